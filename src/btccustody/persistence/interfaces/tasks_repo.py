from __future__ import annotations

from typing import Protocol

from btccustody.domain.task import DepositTask, ReserveBalance, TaskEvent, TaskEventType


class TasksRepoProtocol(Protocol):
    def allocate_task(
        self,
        *,
        partner_id: int,
        deposit_address: str,
        timelock_end_time: int,
        deadline: int,
        amount: int,
        btc_address: str,
        btc_pubkey: bytes,
        now: int,
    ) -> DepositTask: ...

    def get_task(self, task_id: int) -> DepositTask | None: ...

    def save_task(self, task: DepositTask) -> None: ...

    def delete_task(self, task_id: int) -> None: ...

    def list_partner_task_ids(self, partner_id: int) -> list[int]: ...

    def get_address_slot(self, deposit_address: str) -> int: ...

    def set_address_slot(self, deposit_address: str, task_id: int, *, now: int) -> None: ...

    def append_event(
        self,
        *,
        task_id: int,
        event_type: TaskEventType,
        ts: int,
        actor: str,
        payload: dict[str, object],
    ) -> TaskEvent: ...

    def list_events(self, task_id: int) -> list[TaskEvent]: ...

    def get_reserve(self) -> ReserveBalance: ...

    def save_reserve(self, reserve: ReserveBalance, *, now: int) -> None: ...
