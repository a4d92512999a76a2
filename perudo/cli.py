"""
Perudo CLI - Command-line interface for the engine.

Usage:
    perudo simulate [--players N] [--seed S]   Play a bot-only match and print it
    perudo serve [--host H] [--port P]          Run the HTTP/WebSocket API
"""

import argparse
import logging
import os
import random
import sys


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Perudo - Liar's Dice match engine",
        prog="perudo",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("PERUDO_LOG_LEVEL", "WARNING"),
        help="Logging level (DEBUG, INFO, WARNING)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    simulate_parser = subparsers.add_parser("simulate", help="Play a match between bots")
    simulate_parser.add_argument("--players", type=int, default=4, help="Number of bot players")
    simulate_parser.add_argument("--seed", type=int, default=None, help="Seed for dice and bots")
    simulate_parser.add_argument("--starting-dice", type=int, default=5, help="Dice per player")
    simulate_parser.add_argument("--no-palifico", action="store_true", help="Disable Palifico rounds")
    simulate_parser.add_argument("--no-ghosts", action="store_true", help="Eliminated players are dead")
    simulate_parser.add_argument("--max-steps", type=int, default=5000, help="Safety limit on commands")

    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "simulate":
        return cmd_simulate(args)
    elif args.command == "serve":
        return cmd_serve(args)
    else:
        parser.print_help()
        sys.exit(1)


def cmd_simulate(args):
    """Play a full match between ExpectationPolicy bots."""
    from .api.service import MatchService
    from .bots import ExpectationPolicy
    from .engine_core import Command, MatchSettings, MatchPhase

    seed = args.seed if args.seed is not None else random.randrange(1 << 30)
    try:
        settings = MatchSettings(
            starting_dice=args.starting_dice,
            palifico_rules=not args.no_palifico,
            ghost_mode=not args.no_ghosts,
            max_players=max(args.players, 2),
        )
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    player_ids = [f"bot_{i + 1}" for i in range(args.players)]
    service = MatchService.seeded(seed)
    state = service.create_match(player_ids, settings)
    match_id = state.match_id
    bots = {
        pid: ExpectationPolicy(rng=random.Random(seed + i))
        for i, pid in enumerate(player_ids)
    }

    print(f"Match {match_id} (seed {seed}) with {args.players} players")
    result = service.submit(match_id, Command.start_game())
    if not result.success:
        print(f"Error: {result.error}")
        sys.exit(1)

    for _ in range(args.max_steps):
        state = service.get_state(match_id)
        if state.phase == MatchPhase.COMPLETED:
            break

        if state.phase in (MatchPhase.ROLLING, MatchPhase.REVEALING, MatchPhase.ROUND_COMPLETE):
            if state.phase == MatchPhase.ROLLING:
                palifico = " (palifico)" if state.is_palifico else ""
                print(f"\nRound {state.round_number}{palifico}: {state.current_player_id} starts")
            result = service.advance(match_id)
            for effect in result.effects:
                _print_effect(effect)
            continue

        pid = state.current_player_id
        decision = bots[pid].select_command(state, pid)
        result = service.submit(match_id, decision.command)
        if not result.success:
            print(f"  {pid}: {decision.command.command_type.value} rejected ({result.error})")
            if state.current_wager is None:
                sys.exit(1)
            result = service.submit(match_id, Command.dudo(pid))
        for effect in result.effects:
            _print_effect(effect)
    else:
        print(f"Stopped after {args.max_steps} commands")
        sys.exit(1)

    final = service.get_state(match_id)
    print(f"\nWinner: {final.winner_id} by {final.win_method.value} after {final.round_number} rounds")
    return 0


def _print_effect(effect):
    from .engine_core import WagerPlaced, RoundResolved, PlayerEliminated, GameWon

    if isinstance(effect, WagerPlaced):
        w = effect.wager
        print(f"  {w.player_id} bids {w.count}x{w.value}")
    elif isinstance(effect, RoundResolved):
        r = effect.result
        if r.action == "dudo":
            print(f"  {r.actor_id} calls dudo: {r.actual_count} on the table, {r.loser_id} loses a die")
        else:
            outcome = "exact!" if r.success else "missed"
            print(f"  {r.actor_id} calls calza: {r.actual_count} on the table, {outcome}")
    elif isinstance(effect, PlayerEliminated):
        print(f"  {effect.player_id} is out ({effect.status.value})")
    elif isinstance(effect, GameWon):
        print(f"  {effect.winner_id} wins ({effect.method.value})")


def cmd_serve(args):
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run("perudo.api.app:app", host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    main()
