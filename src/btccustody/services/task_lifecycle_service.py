"""Deposit task state machine.

CREATED -> RECEIVED -> TIMELOCK_INITIALIZED -> CONFIRMED -> COMPLETED

CREATED may instead be cancelled (record erased). TIMELOCK_INITIALIZED may be
re-entered to replace the timelock transaction before confirmation, and an
admin may force CONFIRMED -> COMPLETED without waiting for the timelock.

Every public mutation runs inside a single ``UnitOfWork``: either all of its
writes (task row, address slot, partner list, reserve, event) commit, or none.
Bridge and bitcoin views are queried before the write transaction opens, and
the task is re-read under the lock before it is changed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace

from btccustody.adapters.bitcoin_view import BitcoinView
from btccustody.adapters.bridge_view import BridgeView
from btccustody.domain.address import pubkey_to_p2wpkh, validate_pubkey
from btccustody.domain.block_header import parse_header
from btccustody.domain.errors import (
    AddressBusyError,
    AddressMismatchError,
    AmountMismatchError,
    BlockHashMismatchError,
    CustodyError,
    DeadlineExpiredError,
    DepositNotRecognizedError,
    InsufficientReserveError,
    InvalidAmountError,
    InvalidScheduleError,
    MerkleProofError,
    TaskNotFoundError,
    TaskStateError,
    TaskValidationError,
    TimelockNotReachedError,
)
from btccustody.domain.merkle import HASH_LENGTH, reverse_hash, txid_from_raw, verify_merkle_proof
from btccustody.domain.task import (
    AVAILABLE_SLOT,
    AmountPolicy,
    DepositTask,
    ReserveBalance,
    TaskEvent,
    TaskEventType,
    TaskState,
    normalize_deposit_address,
)
from btccustody.logging_context import with_logging_context
from btccustody.persistence.interfaces.tasks_repo import TasksRepoProtocol
from btccustody.persistence.uow import UnitOfWork, UnitOfWorkFactory
from btccustody.security.access import AuthorizedActor, Role

logger = logging.getLogger(__name__)

MAX_TX_OUT = 0xFFFFFFFF
RESERVE_EVENT_TASK_ID = 0


def _require_hash(value: bytes, *, name: str) -> bytes:
    if len(value) != HASH_LENGTH:
        raise TaskValidationError(f"{name} must be {HASH_LENGTH} bytes, got {len(value)}")
    return bytes(value)


def _require_tx_out(value: int) -> int:
    if not 0 <= value <= MAX_TX_OUT:
        raise TaskValidationError(f"tx_out must fit in uint32, got {value}")
    return int(value)


def _require_state(task: DepositTask, *allowed: TaskState) -> None:
    if task.state not in allowed:
        expected = ", ".join(state.value for state in allowed)
        raise TaskStateError(
            f"task {task.task_id} is {task.state.value}; expected one of: {expected}"
        )


class TaskLifecycleService:
    def __init__(
        self,
        *,
        uow_factory: UnitOfWorkFactory,
        bridge: BridgeView,
        bitcoin: BitcoinView,
        authorizer: AuthorizedActor,
        amount_policy: AmountPolicy | None = None,
        mainnet: bool = True,
        now_fn: Callable[[], int] | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._bridge = bridge
        self._bitcoin = bitcoin
        self._authorizer = authorizer
        self._amount_policy = amount_policy or AmountPolicy()
        self._mainnet = mainnet
        self._now_fn = now_fn or (lambda: int(time.time()))

    @contextmanager
    def _operation(self, name: str, *, actor: str, task_id: int | None = None) -> Iterator[None]:
        with with_logging_context(operation=name, actor=actor, task_id=task_id):
            try:
                yield
            except CustodyError as exc:
                logger.warning(
                    "task_operation_rejected",
                    extra={
                        "extra": {
                            "operation": name,
                            "error_type": type(exc).__name__,
                            "category": exc.category.value,
                            "reason": str(exc),
                        }
                    },
                )
                raise

    def _load(self, uow: UnitOfWork, task_id: int) -> DepositTask:
        task = uow.tasks.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"task {task_id} does not exist")
        return task

    def _reload_unchanged(self, uow: UnitOfWork, checked: DepositTask) -> DepositTask:
        # collaborators are queried outside the write lock; the row must not have moved since
        current = self._load(uow, checked.task_id)
        if current != checked:
            raise TaskStateError(
                f"task {checked.task_id} changed from {checked.state.value} to "
                f"{current.state.value} while collaborators were queried"
            )
        return current

    def _emit(
        self,
        repo: TasksRepoProtocol,
        *,
        task_id: int,
        event_type: TaskEventType,
        now: int,
        actor: str,
        payload: dict[str, object],
    ) -> TaskEvent:
        event = repo.append_event(
            task_id=task_id, event_type=event_type, ts=now, actor=actor, payload=payload
        )
        logger.info(
            f"task_{event_type.value.lower()}",
            extra={"extra": {"task_id": task_id, "event_id": event.event_id, **payload}},
        )
        return event

    # Admin operations

    def create(
        self,
        *,
        actor: str,
        partner_id: int,
        deposit_address: str,
        timelock_end_time: int,
        deadline: int,
        amount: int,
        btc_address: str,
        btc_pubkey: bytes,
    ) -> int:
        with self._operation("create", actor=actor):
            self._authorizer.require(actor, Role.ADMIN)
            now = self._now_fn()
            if deadline <= now:
                raise InvalidScheduleError(f"deadline {deadline} is not in the future (now={now})")
            if timelock_end_time <= deadline:
                raise InvalidScheduleError(
                    f"timelock_end_time {timelock_end_time} must be after deadline {deadline}"
                )
            self._amount_policy.validate(amount)
            pubkey = validate_pubkey(btc_pubkey)
            expected_address = pubkey_to_p2wpkh(pubkey, self._mainnet)
            claimed_address = btc_address.strip().lower()
            if claimed_address != expected_address:
                raise AddressMismatchError(
                    f"btc address {btc_address!r} is not the P2WPKH address of the public key"
                )
            address = normalize_deposit_address(deposit_address)

            with self._uow_factory() as uow:
                holder = uow.tasks.get_address_slot(address)
                if holder != AVAILABLE_SLOT:
                    raise AddressBusyError(
                        f"deposit address {address} already has active task {holder}"
                    )
                task = uow.tasks.allocate_task(
                    partner_id=partner_id,
                    deposit_address=address,
                    timelock_end_time=timelock_end_time,
                    deadline=deadline,
                    amount=amount,
                    btc_address=claimed_address,
                    btc_pubkey=pubkey,
                    now=now,
                )
                uow.tasks.set_address_slot(address, task.task_id, now=now)
                self._emit(
                    uow.tasks,
                    task_id=task.task_id,
                    event_type=TaskEventType.CREATED,
                    now=now,
                    actor=actor,
                    payload={
                        "partner_id": partner_id,
                        "deposit_address": address,
                        "amount": str(amount),
                        "timelock_end_time": timelock_end_time,
                        "deadline": deadline,
                        "btc_address": claimed_address,
                    },
                )
            return task.task_id

    def cancel(self, *, actor: str, task_id: int) -> None:
        with self._operation("cancel", actor=actor, task_id=task_id):
            self._authorizer.require(actor, Role.ADMIN)
            now = self._now_fn()
            with self._uow_factory() as uow:
                task = self._load(uow, task_id)
                _require_state(task, TaskState.CREATED)
                uow.tasks.set_address_slot(task.deposit_address, AVAILABLE_SLOT, now=now)
                uow.tasks.delete_task(task_id)
                self._emit(
                    uow.tasks,
                    task_id=task_id,
                    event_type=TaskEventType.CANCELLED,
                    now=now,
                    actor=actor,
                    payload={"deposit_address": task.deposit_address},
                )

    def force_complete(self, *, actor: str, task_id: int) -> DepositTask:
        with self._operation("force_complete", actor=actor, task_id=task_id):
            self._authorizer.require(actor, Role.ADMIN)
            return self._complete(actor=actor, task_id=task_id, forced=True)

    def fund_reserve(self, *, actor: str, amount: int) -> ReserveBalance:
        with self._operation("fund_reserve", actor=actor):
            self._authorizer.require(actor, Role.ADMIN)
            if amount <= 0:
                raise InvalidAmountError("reserve funding amount must be > 0")
            now = self._now_fn()
            with self._uow_factory() as uow:
                current = uow.tasks.get_reserve()
                updated = replace(current, balance=current.balance + amount)
                uow.tasks.save_reserve(updated, now=now)
                self._emit(
                    uow.tasks,
                    task_id=RESERVE_EVENT_TASK_ID,
                    event_type=TaskEventType.RESERVE_FUNDED,
                    now=now,
                    actor=actor,
                    payload={"amount": str(amount), "balance": str(updated.balance)},
                )
            return updated

    # Relayer operations

    def receive_funds(
        self,
        *,
        actor: str,
        task_id: int,
        amount: int,
        funding_tx_hash: bytes,
        tx_out: int,
    ) -> DepositTask:
        with self._operation("receive_funds", actor=actor, task_id=task_id):
            self._authorizer.require(actor, Role.RELAYER)
            funding_hash = _require_hash(funding_tx_hash, name="funding_tx_hash")
            funding_out = _require_tx_out(tx_out)
            now = self._now_fn()
            task = self.get_task(task_id)
            _require_state(task, TaskState.CREATED)
            if now >= task.deadline:
                raise DeadlineExpiredError(
                    f"task {task_id} deadline {task.deadline} has passed (now={now})"
                )
            if amount != task.amount:
                raise AmountMismatchError(
                    f"received amount {amount} does not match task amount {task.amount}"
                )
            if not self._bridge.is_deposited(funding_hash, funding_out):
                raise DepositNotRecognizedError(
                    f"bridge does not recognize deposit {funding_hash.hex()}:{funding_out}"
                )
            with self._uow_factory() as uow:
                self._reload_unchanged(uow, task)
                updated = replace(
                    task,
                    state=TaskState.RECEIVED,
                    funding_tx_hash=funding_hash,
                    funding_tx_out=funding_out,
                    updated_at=now,
                )
                uow.tasks.save_task(updated)
                self._emit(
                    uow.tasks,
                    task_id=task_id,
                    event_type=TaskEventType.FUNDS_RECEIVED,
                    now=now,
                    actor=actor,
                    payload={
                        "amount": str(amount),
                        "funding_tx_hash": funding_hash.hex(),
                        "funding_tx_out": funding_out,
                    },
                )
            return updated

    def init_timelock_tx(
        self,
        *,
        actor: str,
        task_id: int,
        tx_out: int,
        witness_script: bytes,
        raw_tx: bytes | None = None,
        tx_hash: bytes | None = None,
    ) -> DepositTask:
        """Record the transaction that moves the deposit into the timelocked output.

        Exactly one of ``raw_tx`` (hashed here) or ``tx_hash`` (display byte
        order, as block explorers print it) must be given.
        """
        with self._operation("init_timelock_tx", actor=actor, task_id=task_id):
            self._authorizer.require(actor, Role.RELAYER)
            if (raw_tx is None) == (tx_hash is None):
                raise TaskValidationError("provide exactly one of raw_tx or tx_hash")
            if raw_tx is not None:
                if not raw_tx:
                    raise TaskValidationError("raw_tx cannot be empty")
                timelock_hash = txid_from_raw(raw_tx)
            else:
                timelock_hash = _require_hash(tx_hash, name="tx_hash")
            timelock_out = _require_tx_out(tx_out)
            if not witness_script:
                raise TaskValidationError("witness_script cannot be empty")
            now = self._now_fn()
            with self._uow_factory() as uow:
                task = self._load(uow, task_id)
                _require_state(task, TaskState.RECEIVED, TaskState.TIMELOCK_INITIALIZED)
                updated = replace(
                    task,
                    state=TaskState.TIMELOCK_INITIALIZED,
                    timelock_tx_hash=timelock_hash,
                    timelock_tx_out=timelock_out,
                    witness_script=bytes(witness_script),
                    updated_at=now,
                )
                uow.tasks.save_task(updated)
                self._emit(
                    uow.tasks,
                    task_id=task_id,
                    event_type=TaskEventType.TIMELOCK_INITIALIZED,
                    now=now,
                    actor=actor,
                    payload={
                        "timelock_tx_hash": timelock_hash.hex(),
                        "timelock_tx_out": timelock_out,
                        "witness_script": bytes(witness_script).hex(),
                        "replaced": task.state == TaskState.TIMELOCK_INITIALIZED,
                    },
                )
            return updated

    def process_timelock_tx(
        self,
        *,
        actor: str,
        task_id: int,
        raw_header: bytes,
        height: int,
        proof: Sequence[bytes],
        index: int,
    ) -> DepositTask:
        with self._operation("process_timelock_tx", actor=actor, task_id=task_id):
            self._authorizer.require(actor, Role.RELAYER)
            if height < 0:
                raise TaskValidationError(f"block height must be >= 0, got {height}")
            header = parse_header(raw_header)
            siblings = [_require_hash(node, name="proof node") for node in proof]
            now = self._now_fn()
            task = self.get_task(task_id)
            _require_state(task, TaskState.TIMELOCK_INITIALIZED)
            if task.timelock_tx_hash is None:
                raise TaskStateError(f"task {task_id} has no timelock transaction")

            reported = self._bitcoin.block_hash(height)
            if reported != header.block_hash:
                raise BlockHashMismatchError(
                    f"header hash {reverse_hash(header.block_hash).hex()} does not match "
                    f"block at height {height}"
                )
            leaf = reverse_hash(task.timelock_tx_hash)
            if not verify_merkle_proof(header.merkle_root, siblings, leaf, index):
                raise MerkleProofError(
                    f"timelock tx {task.timelock_tx_hash.hex()} is not included at index {index}"
                )

            with self._uow_factory() as uow:
                self._reload_unchanged(uow, task)
                uow.tasks.set_address_slot(task.deposit_address, AVAILABLE_SLOT, now=now)
                updated = replace(task, state=TaskState.CONFIRMED, updated_at=now)
                uow.tasks.save_task(updated)
                self._emit(
                    uow.tasks,
                    task_id=task_id,
                    event_type=TaskEventType.TIMELOCK_PROCESSED,
                    now=now,
                    actor=actor,
                    payload={
                        "height": height,
                        "block_hash": reverse_hash(header.block_hash).hex(),
                        "index": index,
                    },
                )
            return updated

    # Open operations

    def burn(self, *, actor: str, task_id: int) -> DepositTask:
        with self._operation("burn", actor=actor, task_id=task_id):
            return self._complete(actor=actor, task_id=task_id, forced=False)

    def _complete(self, *, actor: str, task_id: int, forced: bool) -> DepositTask:
        now = self._now_fn()
        with self._uow_factory() as uow:
            task = self._load(uow, task_id)
            _require_state(task, TaskState.CONFIRMED)
            if not forced and now < task.timelock_end_time:
                raise TimelockNotReachedError(
                    f"task {task_id} timelock ends at {task.timelock_end_time} (now={now})"
                )
            reserve = uow.tasks.get_reserve()
            if reserve.balance < task.amount:
                raise InsufficientReserveError(
                    f"reserve balance {reserve.balance} cannot cover {task.amount}"
                )
            uow.tasks.save_reserve(
                ReserveBalance(
                    balance=reserve.balance - task.amount,
                    retired_total=reserve.retired_total + task.amount,
                ),
                now=now,
            )
            updated = replace(task, state=TaskState.COMPLETED, updated_at=now)
            uow.tasks.save_task(updated)
            self._emit(
                uow.tasks,
                task_id=task_id,
                event_type=TaskEventType.BURNED,
                now=now,
                actor=actor,
                payload={"amount": str(task.amount), "forced": forced},
            )
        return updated

    # Read accessors

    def get_task(self, task_id: int) -> DepositTask:
        with self._uow_factory(read_only=True) as uow:
            return self._load(uow, task_id)

    def list_partner_tasks(self, partner_id: int) -> list[int]:
        with self._uow_factory(read_only=True) as uow:
            return uow.tasks.list_partner_task_ids(partner_id)

    def address_slot(self, deposit_address: str) -> int:
        with self._uow_factory(read_only=True) as uow:
            return uow.tasks.get_address_slot(normalize_deposit_address(deposit_address))

    def list_task_events(self, task_id: int) -> list[TaskEvent]:
        with self._uow_factory(read_only=True) as uow:
            return uow.tasks.list_events(task_id)

    def reserve(self) -> ReserveBalance:
        with self._uow_factory(read_only=True) as uow:
            return uow.tasks.get_reserve()

    def close(self) -> None:
        self._bridge.close()
        self._bitcoin.close()
