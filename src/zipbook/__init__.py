"""Turn a project archive into a paginated, indexed PDF report."""

__version__ = "0.1.0"
