from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from uuid import uuid4

from btccustody.config import Settings
from btccustody.domain.address import hash160, pubkey_to_p2pkh, pubkey_to_p2wpkh
from btccustody.domain.errors import CustodyError
from btccustody.logging_context import with_logging_context
from btccustody.logging_utils import setup_logging
from btccustody.services.lifecycle_factory import build_lifecycle_service
from btccustody.services.task_lifecycle_service import TaskLifecycleService

logger = logging.getLogger(__name__)


def _hex_bytes(value: str) -> bytes:
    text = value.strip()
    if text.startswith(("0x", "0X")):
        text = text[2:]
    try:
        return bytes.fromhex(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not a hex string: {value!r}") from exc


def _hex_list(value: str) -> list[bytes]:
    return [_hex_bytes(item) for item in value.split(",") if item.strip()]


def _print_json(payload: object) -> None:
    print(json.dumps(payload, sort_keys=True, default=str))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="btccustody",
        epilog=(
            "Env overrides: STATE_DB_PATH, ADMIN_ACTORS, RELAYER_ACTORS, BITCOIN_NETWORK, "
            "BRIDGE_BASE_URL, ESPLORA_BASE_URL. Hashes are hex; proof nodes and header "
            "bytes are passed in raw (internal) byte order."
        ),
    )
    parser.add_argument("--db", default=None, help="State sqlite DB path (defaults to env STATE_DB_PATH)")
    parser.add_argument("--actor", default="", help="Identity the operation is performed as")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_parser = subparsers.add_parser("create", help="Create a deposit task (admin)")
    create_parser.add_argument("--partner-id", type=int, required=True)
    create_parser.add_argument("--deposit-address", required=True)
    create_parser.add_argument("--timelock-end-time", type=int, required=True)
    create_parser.add_argument("--deadline", type=int, required=True)
    create_parser.add_argument("--amount", type=int, required=True)
    create_parser.add_argument("--btc-address", required=True)
    create_parser.add_argument("--btc-pubkey", type=_hex_bytes, required=True)

    cancel_parser = subparsers.add_parser("cancel", help="Cancel a CREATED task (admin)")
    cancel_parser.add_argument("--task-id", type=int, required=True)

    receive_parser = subparsers.add_parser("receive-funds", help="Record a bridge deposit (relayer)")
    receive_parser.add_argument("--task-id", type=int, required=True)
    receive_parser.add_argument("--amount", type=int, required=True)
    receive_parser.add_argument("--tx-hash", type=_hex_bytes, required=True)
    receive_parser.add_argument("--tx-out", type=int, required=True)

    init_parser = subparsers.add_parser("init-timelock", help="Record the timelock transaction (relayer)")
    init_parser.add_argument("--task-id", type=int, required=True)
    init_parser.add_argument("--tx-out", type=int, required=True)
    init_parser.add_argument("--witness-script", type=_hex_bytes, required=True)
    tx_group = init_parser.add_mutually_exclusive_group(required=True)
    tx_group.add_argument("--raw-tx", type=_hex_bytes, default=None)
    tx_group.add_argument("--tx-hash", type=_hex_bytes, default=None, help="Display-order txid")

    process_parser = subparsers.add_parser(
        "process-timelock", help="Confirm the timelock transaction with a Merkle proof (relayer)"
    )
    process_parser.add_argument("--task-id", type=int, required=True)
    process_parser.add_argument("--header", type=_hex_bytes, required=True, help="80-byte raw header")
    process_parser.add_argument("--height", type=int, required=True)
    process_parser.add_argument("--proof", type=_hex_list, default=[], help="Comma-separated sibling hashes")
    process_parser.add_argument("--index", type=int, required=True)

    burn_parser = subparsers.add_parser("burn", help="Retire the reserve for a matured task")
    burn_parser.add_argument("--task-id", type=int, required=True)

    force_parser = subparsers.add_parser("force-complete", help="Complete a CONFIRMED task early (admin)")
    force_parser.add_argument("--task-id", type=int, required=True)

    fund_parser = subparsers.add_parser("fund-reserve", help="Add to the retirement reserve (admin)")
    fund_parser.add_argument("--amount", type=int, required=True)

    show_parser = subparsers.add_parser("show", help="Print one task")
    show_parser.add_argument("--task-id", type=int, required=True)

    partner_parser = subparsers.add_parser("partner-tasks", help="List task ids for a partner")
    partner_parser.add_argument("--partner-id", type=int, required=True)

    events_parser = subparsers.add_parser("events", help="Print the event log of a task")
    events_parser.add_argument("--task-id", type=int, required=True)

    address_parser = subparsers.add_parser("address", help="Derive P2PKH/P2WPKH addresses from a pubkey")
    address_parser.add_argument("--pubkey", type=_hex_bytes, required=True)
    address_parser.add_argument("--testnet", action="store_true")
    return parser


def _run_address(args: argparse.Namespace) -> dict[str, object]:
    mainnet = not args.testnet
    return {
        "hash160": hash160(args.pubkey).hex(),
        "network": "mainnet" if mainnet else "testnet",
        "p2pkh": pubkey_to_p2pkh(args.pubkey, mainnet),
        "p2wpkh": pubkey_to_p2wpkh(args.pubkey, mainnet),
    }


def _dispatch(service: TaskLifecycleService, args: argparse.Namespace) -> object:
    actor = args.actor
    command = args.command
    if command == "create":
        task_id = service.create(
            actor=actor,
            partner_id=args.partner_id,
            deposit_address=args.deposit_address,
            timelock_end_time=args.timelock_end_time,
            deadline=args.deadline,
            amount=args.amount,
            btc_address=args.btc_address,
            btc_pubkey=args.btc_pubkey,
        )
        return {"task_id": task_id}
    if command == "cancel":
        service.cancel(actor=actor, task_id=args.task_id)
        return {"task_id": args.task_id, "cancelled": True}
    if command == "receive-funds":
        return service.receive_funds(
            actor=actor,
            task_id=args.task_id,
            amount=args.amount,
            funding_tx_hash=args.tx_hash,
            tx_out=args.tx_out,
        ).to_dict()
    if command == "init-timelock":
        return service.init_timelock_tx(
            actor=actor,
            task_id=args.task_id,
            tx_out=args.tx_out,
            witness_script=args.witness_script,
            raw_tx=args.raw_tx,
            tx_hash=args.tx_hash,
        ).to_dict()
    if command == "process-timelock":
        return service.process_timelock_tx(
            actor=actor,
            task_id=args.task_id,
            raw_header=args.header,
            height=args.height,
            proof=args.proof,
            index=args.index,
        ).to_dict()
    if command == "burn":
        return service.burn(actor=actor, task_id=args.task_id).to_dict()
    if command == "force-complete":
        return service.force_complete(actor=actor, task_id=args.task_id).to_dict()
    if command == "fund-reserve":
        reserve = service.fund_reserve(actor=actor, amount=args.amount)
        return {"balance": str(reserve.balance), "retired_total": str(reserve.retired_total)}
    if command == "show":
        return service.get_task(args.task_id).to_dict()
    if command == "partner-tasks":
        return {"partner_id": args.partner_id, "task_ids": service.list_partner_tasks(args.partner_id)}
    if command == "events":
        return [
            {
                "event_id": event.event_id,
                "event_type": event.event_type.value,
                "ts": event.ts,
                "actor": event.actor,
                "payload": event.payload,
            }
            for event in service.list_task_events(args.task_id)
        ]
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    settings = Settings()
    if args.db:
        settings = settings.model_copy(update={"state_db_path": args.db})
    setup_logging(settings.log_level)

    with with_logging_context(run_id=uuid4().hex, actor=args.actor or None):
        if args.command == "address":
            try:
                _print_json(_run_address(args))
            except CustodyError as exc:
                print(f"{type(exc).__name__}: {exc}", file=sys.stderr)
                return 2
            return 0

        service = build_lifecycle_service(settings)
        try:
            result = _dispatch(service, args)
        except CustodyError as exc:
            logger.error(
                "cli_command_failed",
                extra={"extra": {"command": args.command, "error_type": type(exc).__name__}},
            )
            _print_json({"error": type(exc).__name__, "category": exc.category.value, "message": str(exc)})
            return 2
        finally:
            service.close()
    _print_json(result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
