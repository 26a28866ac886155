from btccustody.persistence.sqlite.tasks_repo import SqliteTasksRepo

__all__ = ["SqliteTasksRepo"]
