from tasky.tasky import TaskyService, create_app

__all__ = ["TaskyService", "create_app"]
