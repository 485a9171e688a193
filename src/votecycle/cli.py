"""votecycle CLI — command-line interface for the voting workflow.

Usage:
    votecycle status
    votecycle register-voters alice bob carol
    votecycle advance
    votecycle --as alice add-proposal "Plant more trees"
    votecycle --as bob vote 0
    votecycle compute-result
    votecycle winner
    votecycle check-invariants

State persists between invocations in <data>/state.json and events are
appended to <data>/events.jsonl. Settings may come from a .env file in
the working directory:

    VOTECYCLE_ADMIN       administrator principal (default: admin)
    VOTECYCLE_PRINCIPAL   default caller for --as (default: the administrator)
    VOTECYCLE_DATA_DIR    data directory (default: data/)
    VOTECYCLE_LOG_LEVEL   logging level (default: WARNING)
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from votecycle.models.workflow import Phase
from votecycle.persistence.event_log import EventLog
from votecycle.persistence.state_store import StateStore
from votecycle.policy.resolver import PolicyResolver
from votecycle.service import ServiceResult, VotingService


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"
DEFAULT_ADMIN = "admin"


def _make_service(args: argparse.Namespace) -> VotingService:
    """Create a VotingService with durable persistence."""
    data_dir: Path = args.data
    data_dir.mkdir(parents=True, exist_ok=True)
    resolver = PolicyResolver.from_config_dir(args.config)
    return VotingService(
        resolver,
        admin_id=os.getenv("VOTECYCLE_ADMIN", DEFAULT_ADMIN),
        event_sink=EventLog(storage_path=data_dir / "events.jsonl"),
        state_store=StateStore(data_dir / "state.json"),
    )


def _caller(args: argparse.Namespace) -> str:
    return (
        args.principal
        or os.getenv("VOTECYCLE_PRINCIPAL")
        or os.getenv("VOTECYCLE_ADMIN", DEFAULT_ADMIN)
    )


def _report(result: ServiceResult) -> int:
    for warning in result.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    if result.success:
        print(json.dumps(result.data, indent=2, default=str))
        return 0
    print(f"Failed [{result.error_code}]: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(json.dumps(service.status(), indent=2, default=str))
    return 0


def cmd_register_voter(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.register_voter(_caller(args), args.id))


def cmd_register_voters(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.register_voters(_caller(args), args.ids))


def cmd_advance(args: argparse.Namespace) -> int:
    service = _make_service(args)
    target = Phase(args.to) if args.to else None
    return _report(service.advance_phase(_caller(args), target))


def cmd_compute_result(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.compute_result(_caller(args)))


def cmd_start_new_cycle(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.start_new_cycle(_caller(args)))


def cmd_set_vote_update(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.set_allow_vote_update(_caller(args), args.mode == "on"))


def cmd_add_proposal(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.add_proposal(_caller(args), args.description))


def cmd_vote(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.cast_vote(_caller(args), args.proposal_id))


def cmd_list_voters(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.list_voters(_caller(args)))


def cmd_voter_info(args: argparse.Namespace) -> int:
    service = _make_service(args)
    if args.id is None:
        return _report(service.all_voters_info(_caller(args)))
    return _report(service.voter_info(_caller(args), args.id))


def cmd_list_proposals(args: argparse.Namespace) -> int:
    service = _make_service(args)
    if args.id is None:
        return _report(service.list_proposals(_caller(args)))
    return _report(service.proposal_info(_caller(args), args.id))


def cmd_winner(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.winning_proposal_details())


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Check the stored aggregate against its invariants."""
    service = _make_service(args)
    violations = service.check_invariants()
    for violation in violations:
        print(f"VIOLATION: {violation}", file=sys.stderr)
    if violations:
        return 1
    print("All invariants hold.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="votecycle",
        description="votecycle — role-gated voting workflow CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--data",
        type=Path,
        default=Path(os.getenv("VOTECYCLE_DATA_DIR", DEFAULT_DATA)),
        help="Path to data directory (default: data/)",
    )
    parser.add_argument(
        "--as",
        dest="principal",
        help="Caller principal (default: $VOTECYCLE_PRINCIPAL or the administrator)",
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Show workflow status")

    p_reg = sub.add_parser("register-voter", help="Register one voter (admin)")
    p_reg.add_argument("id", help="Voter principal")

    p_regs = sub.add_parser("register-voters", help="Register voters atomically (admin)")
    p_regs.add_argument("ids", nargs="+", help="Voter principals")

    p_adv = sub.add_parser("advance", help="Advance to the next phase (admin)")
    p_adv.add_argument(
        "--to",
        choices=[p.value for p in Phase],
        help="Expected target phase (must be the next one)",
    )

    sub.add_parser("compute-result", help="Tally votes (admin)")
    sub.add_parser("start-new-cycle", help="Reset for a new cycle (admin)")

    p_upd = sub.add_parser("set-vote-update", help="Allow or forbid vote changes (admin)")
    p_upd.add_argument("mode", choices=["on", "off"])

    p_prop = sub.add_parser("add-proposal", help="Submit a proposal (voter)")
    p_prop.add_argument("description", help="Proposal text")

    p_vote = sub.add_parser("vote", help="Cast or change a vote (voter)")
    p_vote.add_argument("proposal_id", type=int, help="Proposal id")

    sub.add_parser("list-voters", help="List registered voters")

    p_info = sub.add_parser("voter-info", help="Show one voter, or all voters")
    p_info.add_argument("--id", help="Voter principal (default: all)")

    p_lp = sub.add_parser("list-proposals", help="Show one proposal, or all proposals")
    p_lp.add_argument("--id", type=int, help="Proposal id (default: all)")

    sub.add_parser("winner", help="Show the winning proposal")
    sub.add_parser("check-invariants", help="Check stored state invariants")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv(Path.cwd() / ".env")
    logging.basicConfig(
        level=os.getenv("VOTECYCLE_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "register-voter": cmd_register_voter,
        "register-voters": cmd_register_voters,
        "advance": cmd_advance,
        "compute-result": cmd_compute_result,
        "start-new-cycle": cmd_start_new_cycle,
        "set-vote-update": cmd_set_vote_update,
        "add-proposal": cmd_add_proposal,
        "vote": cmd_vote,
        "list-voters": cmd_list_voters,
        "voter-info": cmd_voter_info,
        "list-proposals": cmd_list_proposals,
        "winner": cmd_winner,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
