import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def _parse_instant(value: str) -> datetime:
    instant = datetime.fromisoformat(value)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description=(
            "Expire pending proposals past the retention window or their valid-until date. "
            "Intended to run from a scheduler."
        )
    )
    parser.add_argument(
        "--now",
        type=_parse_instant,
        default=None,
        help="Override the sweep clock with an ISO8601 instant (UTC when no offset is given).",
    )
    args = parser.parse_args(argv)

    from src.api.observability import configure_logging
    from src.api.routers import proposals_config
    from src.core.proposals import ProposalLifecycleService, SystemClock

    configure_logging()
    logger = logging.getLogger("scripts.run_expiry_sweep")
    service = ProposalLifecycleService(
        store=proposals_config.build_store(),
        clinic_directory=proposals_config.build_clinic_directory(),
        clock=SystemClock(),
        expiry_retention=proposals_config.proposal_expiry_retention(),
        supported_currencies=proposals_config.proposal_supported_currencies(),
    )
    result = service.run_expiry_sweep(now=args.now)
    print(result.model_dump_json(indent=2))
    if result.conflicted_ids:
        logger.warning(
            "Expiry sweep skipped proposals that changed concurrently",
            extra={"extra_fields": {"conflicted_ids": result.conflicted_ids}},
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
