"""StoryWeave - an interactive node canvas for story planning."""

__version__ = "1.0.0"
__app_id__ = "io.github.storyweave.StoryWeave"
