"""Terminal rendering for the anistream command line."""
