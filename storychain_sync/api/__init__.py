"""HTTP API for the StoryChain projection."""
