from btccustody.persistence.interfaces.tasks_repo import TasksRepoProtocol

__all__ = ["TasksRepoProtocol"]
