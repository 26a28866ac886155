from __future__ import annotations

import json
import logging
import sqlite3

from btccustody.domain.task import (
    AVAILABLE_SLOT,
    DepositTask,
    ReserveBalance,
    TaskEvent,
    TaskEventType,
    TaskState,
    make_event_id,
)
from btccustody.persistence.sqlite.sqlite_connection import ensure_custody_schema

logger = logging.getLogger(__name__)


def _blob_or_none(value: object) -> bytes | None:
    return bytes(value) if value is not None else None


def _int_or_none(value: object) -> int | None:
    return int(value) if value is not None else None


class SqliteTasksRepo:
    def __init__(self, conn: sqlite3.Connection, *, read_only: bool = False) -> None:
        self._conn = conn
        self._read_only = read_only
        ensure_custody_schema(conn)

    def _ensure_writable(self) -> None:
        if self._read_only:
            logger.warning("read_only_write_blocked", extra={"extra": {"repo": "tasks"}})
            raise PermissionError("UnitOfWork is read-only; task writes are blocked")

    def _row_to_task(self, row: sqlite3.Row) -> DepositTask:
        return DepositTask(
            task_id=int(row["task_id"]),
            partner_id=int(row["partner_id"]),
            deposit_address=str(row["deposit_address"]),
            state=TaskState(str(row["state"])),
            timelock_end_time=int(row["timelock_end_time"]),
            deadline=int(row["deadline"]),
            amount=int(str(row["amount"])),
            btc_address=str(row["btc_address"]),
            btc_pubkey=bytes(row["btc_pubkey"]),
            funding_tx_hash=_blob_or_none(row["funding_tx_hash"]),
            funding_tx_out=_int_or_none(row["funding_tx_out"]),
            timelock_tx_hash=_blob_or_none(row["timelock_tx_hash"]),
            timelock_tx_out=_int_or_none(row["timelock_tx_out"]),
            witness_script=_blob_or_none(row["witness_script"]),
            created_at=int(row["created_at"]),
            updated_at=int(row["updated_at"]),
        )

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
    ) -> DepositTask:
        self._ensure_writable()
        cursor = self._conn.execute(
            """
            INSERT INTO custody_tasks(
                partner_id, deposit_address, state, timelock_end_time, deadline,
                amount, btc_address, btc_pubkey, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                partner_id,
                deposit_address,
                TaskState.CREATED.value,
                timelock_end_time,
                deadline,
                str(amount),
                btc_address,
                bytes(btc_pubkey),
                now,
                now,
            ),
        )
        task_id = int(cursor.lastrowid)
        self._conn.execute(
            "INSERT OR IGNORE INTO custody_partner_tasks(partner_id, task_id) VALUES (?, ?)",
            (partner_id, task_id),
        )
        task = self.get_task(task_id)
        if task is None:
            raise RuntimeError(f"allocated task {task_id} could not be read back")
        return task

    def get_task(self, task_id: int) -> DepositTask | None:
        row = self._conn.execute(
            "SELECT * FROM custody_tasks WHERE task_id = ?",
            (task_id,),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def save_task(self, task: DepositTask) -> None:
        self._ensure_writable()
        cursor = self._conn.execute(
            """
            UPDATE custody_tasks
            SET state = ?,
                funding_tx_hash = ?,
                funding_tx_out = ?,
                timelock_tx_hash = ?,
                timelock_tx_out = ?,
                witness_script = ?,
                updated_at = ?
            WHERE task_id = ?
            """,
            (
                task.state.value,
                task.funding_tx_hash,
                task.funding_tx_out,
                task.timelock_tx_hash,
                task.timelock_tx_out,
                task.witness_script,
                task.updated_at,
                task.task_id,
            ),
        )
        if cursor.rowcount != 1:
            raise RuntimeError(f"task {task.task_id} vanished during update")

    def delete_task(self, task_id: int) -> None:
        self._ensure_writable()
        self._conn.execute("DELETE FROM custody_tasks WHERE task_id = ?", (task_id,))
        self._conn.execute("DELETE FROM custody_partner_tasks WHERE task_id = ?", (task_id,))

    def list_partner_task_ids(self, partner_id: int) -> list[int]:
        rows = self._conn.execute(
            "SELECT task_id FROM custody_partner_tasks WHERE partner_id = ? ORDER BY task_id",
            (partner_id,),
        ).fetchall()
        return [int(row["task_id"]) for row in rows]

    def get_address_slot(self, deposit_address: str) -> int:
        row = self._conn.execute(
            "SELECT task_id FROM custody_address_slots WHERE deposit_address = ?",
            (deposit_address,),
        ).fetchone()
        if row is None:
            return AVAILABLE_SLOT
        return int(row["task_id"])

    def set_address_slot(self, deposit_address: str, task_id: int, *, now: int) -> None:
        self._ensure_writable()
        self._conn.execute(
            """
            INSERT INTO custody_address_slots(deposit_address, task_id, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(deposit_address) DO UPDATE SET
                task_id = excluded.task_id,
                updated_at = excluded.updated_at
            """,
            (deposit_address, task_id, now),
        )

    def append_event(
        self,
        *,
        task_id: int,
        event_type: TaskEventType,
        ts: int,
        actor: str,
        payload: dict[str, object],
    ) -> TaskEvent:
        self._ensure_writable()
        row = self._conn.execute(
            "SELECT COUNT(*) AS n FROM custody_task_events WHERE task_id = ?",
            (task_id,),
        ).fetchone()
        seq = int(row["n"]) + 1
        event = TaskEvent(
            event_id=make_event_id(task_id, seq, event_type),
            task_id=task_id,
            event_type=event_type,
            ts=ts,
            actor=actor,
            payload=payload,
        )
        self._conn.execute(
            """
            INSERT INTO custody_task_events(
                event_id, task_id, seq, event_type, ts, actor, payload_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.event_id,
                task_id,
                seq,
                event_type.value,
                ts,
                actor,
                event.payload_json(),
            ),
        )
        return event

    def list_events(self, task_id: int) -> list[TaskEvent]:
        rows = self._conn.execute(
            "SELECT * FROM custody_task_events WHERE task_id = ? ORDER BY seq",
            (task_id,),
        ).fetchall()
        return [
            TaskEvent(
                event_id=str(row["event_id"]),
                task_id=int(row["task_id"]),
                event_type=TaskEventType(str(row["event_type"])),
                ts=int(row["ts"]),
                actor=str(row["actor"]),
                payload=json.loads(str(row["payload_json"])),
            )
            for row in rows
        ]

    def get_reserve(self) -> ReserveBalance:
        row = self._conn.execute(
            "SELECT balance, retired_total FROM custody_reserve WHERE state_id = 1"
        ).fetchone()
        if row is None:
            return ReserveBalance(balance=0, retired_total=0)
        return ReserveBalance(
            balance=int(str(row["balance"])),
            retired_total=int(str(row["retired_total"])),
        )

    def save_reserve(self, reserve: ReserveBalance, *, now: int) -> None:
        self._ensure_writable()
        self._conn.execute(
            """
            INSERT INTO custody_reserve(state_id, balance, retired_total, updated_at)
            VALUES (1, ?, ?, ?)
            ON CONFLICT(state_id) DO UPDATE SET
                balance = excluded.balance,
                retired_total = excluded.retired_total,
                updated_at = excluded.updated_at
            """,
            (str(reserve.balance), str(reserve.retired_total), now),
        )
