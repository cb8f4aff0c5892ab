"""Command line interface for trackroute."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from .builder import RoutingBuilder
from .config import configure_logging, get_settings
from .engine import RoutingEngine
from .evaluation.simulation import SimulationConfig, SimulationRunner
from .explain import format_report
from .routing_config import RoutingConfiguration, load_configuration
from .schemas import ConsentState, EventDescriptor

logger = logging.getLogger(__name__)

CONSENT_CHOICES = {
    "granted": ConsentState.granted(),
    "general": ConsentState(has_general_consent=True),
    "denied": ConsentState.denied(),
}


def _load(args: argparse.Namespace) -> RoutingConfiguration:
    settings = get_settings()
    path = args.config or settings.api.config_path
    if path:
        return load_configuration(path)
    logger.info("No routing configuration given; routing every event to all trackers")
    return RoutingBuilder.from_settings(settings).build()


def _engine(args: argparse.Namespace, configuration: RoutingConfiguration) -> RoutingEngine:
    settings = get_settings()
    if args.seed is not None:
        settings = settings.model_copy(update={"seed": args.seed})
    return RoutingEngine.from_settings(configuration, settings)


def _property_value(raw: str) -> Any:
    """Interpret KEY=VALUE values as JSON literals where possible."""
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    if isinstance(value, (dict, list)):
        return raw
    return value


def _event(args: argparse.Namespace) -> EventDescriptor:
    properties: Dict[str, Any] = {}
    for item in args.property or []:
        key, sep, value = item.partition("=")
        properties[key] = _property_value(value) if sep else None
    return EventDescriptor(
        name=args.name,
        category=args.category,
        properties=properties,
        contains_pii=args.pii,
        is_high_volume=args.high_volume,
        is_essential=args.essential,
        event_type=args.event_type,
        user_id=args.user_id,
        session_id=args.session_id,
    )


def _available(args: argparse.Namespace) -> Optional[List[str]]:
    if not args.available:
        return None
    return [t.strip() for t in args.available.split(",") if t.strip()]


def _emit(payload: Any, out: Optional[str]) -> None:
    if out:
        out_path = Path(out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with open(out_path, "w") as f:
            json.dump(payload, f, indent=2)
        logger.info(f"Results saved to {out_path}")
    else:
        # user-facing data output
        print(json.dumps(payload, indent=2))


def cmd_route(args: argparse.Namespace) -> None:
    configure_logging(get_settings())

    engine = _engine(args, _load(args))
    consent = CONSENT_CHOICES[args.consent] if args.consent else None
    result = engine.route_event(_event(args), consent, _available(args))
    _emit(result.to_dict(), args.out)


def cmd_explain(args: argparse.Namespace) -> None:
    configure_logging(get_settings())

    engine = _engine(args, _load(args))
    consent = CONSENT_CHOICES[args.consent] if args.consent else None
    info = engine.debug_event(_event(args), consent, _available(args))
    if args.text:
        print(format_report(info))
    else:
        _emit(info.to_dict(), args.out)


def cmd_validate(args: argparse.Namespace) -> None:
    configure_logging(get_settings())

    configuration = _load(args)
    issues = configuration.validate_rules()
    _emit(
        {"valid": not issues, "rule_count": len(configuration.rules), "issues": issues},
        args.out,
    )
    if issues and args.strict:
        sys.exit(1)


def cmd_simulate(args: argparse.Namespace) -> None:
    """Route a synthetic event mix and report per-scenario metrics."""
    settings = get_settings()
    configure_logging(settings)

    seed = args.seed if args.seed is not None else (settings.seed or 42)
    engine = _engine(args, _load(args))
    config = SimulationConfig(n_events=args.n, seed=seed, available_trackers=_available(args))

    logger.info(f"Simulating {args.n} events (seed={seed})...")
    results = SimulationRunner(engine, config).run_all()

    for stype, result in results.items():
        logger.info(
            f"{stype.value}: tracked={result.metrics.tracked_rate:.3f} "
            f"warnings={result.metrics.warning_rate:.3f} latency={result.mean_latency_ms:.3f} ms"
        )

    output = {}
    for stype, result in results.items():
        entry = asdict(result)
        entry["scenario_type"] = stype.value
        output[stype.value] = entry
    _emit(output, args.out)


def _add_config_args(p: argparse.ArgumentParser, default_path) -> None:
    p.add_argument("--config", default=None, help=f"Routing configuration JSON (default: {default_path})")


def _add_event_args(p: argparse.ArgumentParser, default_seed) -> None:
    p.add_argument("--name", required=True, help="Event name")
    p.add_argument("--category", default=None)
    p.add_argument("--property", action="append", metavar="KEY=VALUE", help="Event property (repeatable)")
    p.add_argument("--pii", action="store_true", help="Event contains PII")
    p.add_argument("--high-volume", action="store_true")
    p.add_argument("--essential", action="store_true")
    p.add_argument("--event-type", default=None)
    p.add_argument("--user-id", default=None)
    p.add_argument("--session-id", default=None)
    p.add_argument(
        "--consent",
        choices=sorted(CONSENT_CHOICES),
        default=None,
        help="Consent state (default: no consent store, treated as granted)",
    )
    p.add_argument("--available", default=None, help="Comma-separated available tracker ids")
    p.add_argument("--seed", type=int, default=None, help=f"Sampling seed (default: {default_seed})")
    p.add_argument("--out", type=str, help="Output JSON file (defaults to stdout)")


def main(argv: Optional[List[str]] = None) -> None:
    settings = get_settings()

    parser = argparse.ArgumentParser(prog="trackroute")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_route = sub.add_parser("route", help="Decide which trackers receive an event")
    _add_config_args(p_route, settings.api.config_path)
    _add_event_args(p_route, settings.seed)
    p_route.set_defaults(func=cmd_route)

    p_explain = sub.add_parser("explain", help="Explain how every rule treats an event")
    _add_config_args(p_explain, settings.api.config_path)
    _add_event_args(p_explain, settings.seed)
    p_explain.add_argument("--text", action="store_true", help="Human-readable report")
    p_explain.set_defaults(func=cmd_explain)

    p_validate = sub.add_parser("validate", help="Lint a routing configuration")
    _add_config_args(p_validate, settings.api.config_path)
    p_validate.add_argument("--strict", action="store_true", help="Exit with status 1 when issues are found")
    p_validate.add_argument("--out", type=str, help="Output JSON file (defaults to stdout)")
    p_validate.set_defaults(func=cmd_validate)

    p_sim = sub.add_parser("simulate", help="Route a synthetic event mix and report metrics")
    _add_config_args(p_sim, settings.api.config_path)
    p_sim.add_argument("--n", type=int, default=200, help="Number of events")
    p_sim.add_argument("--seed", type=int, default=None, help=f"Random seed (default: {settings.seed})")
    p_sim.add_argument("--available", default=None, help="Comma-separated available tracker ids")
    p_sim.add_argument("--out", type=str, help="Output JSON file (defaults to stdout)")
    p_sim.set_defaults(func=cmd_simulate)

    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
