"""Drop Sheet: direct-mail campaign deadlines, milestones and schedule health."""

__version__ = "0.1.0"
