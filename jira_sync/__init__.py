"""Keep Jira issue statuses in step with GitHub pull requests and deployments."""

__version__ = "0.1.0"
