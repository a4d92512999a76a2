"""
Game State Machine - Applies commands to match state.

The state machine is the single point of state mutation.
All state changes must go through apply().

Design principles:
- Pure function: (state, command) -> TransitionResult
- Player commands are validated first; a rejection leaves state untouched
- Internal timer commands have no rejection path; a wrong phase raises
  InvariantViolation
- Callers serialize apply() per match (see session.MatchStore)

Phases:
    LOBBY -> ROLLING -> AWAITING_FIRST_BID -> BIDDING -> REVEALING
          -> ROUND_COMPLETE -> (ROLLING | COMPLETED)
"""

from __future__ import annotations
from dataclasses import dataclass, field
import logging

from .state import (
    MatchState, MatchPhase, Player, PlayerStatus, Wager,
    RoundResult, Direction, WinMethod, MIN_PLAYERS,
)
from .command import (
    Command, CommandType, Rejection, RejectionCode, TransitionResult,
    InvariantViolation,
)
from .effects import DiceRolled, WagerPlaced, RoundResolved, PlayerEliminated, GameWon
from .dice import DiceEngine
from .bidding import validate_bid
from .resolution import resolve, resolve_dudo, resolve_calza, apply_dice_delta
from .turns import next_player, first_eligible


logger = logging.getLogger(__name__)

SEVEN_CALZAS = 7

BIDDING_PHASES = (MatchPhase.AWAITING_FIRST_BID, MatchPhase.BIDDING)

# Commands that need no seated player
_SEATLESS_COMMANDS = {
    CommandType.JOIN,
    CommandType.UPDATE_SETTINGS,
    CommandType.START_GAME,
}


@dataclass
class GameStateMachine:
    """
    Applies commands to MatchState.

    Stateless apart from the dice source - all match state is in
    MatchState.
    """
    dice: DiceEngine = field(default_factory=DiceEngine)

    def apply(self, state: MatchState, command: Command) -> TransitionResult:
        """
        Apply a command to the match state.

        Returns TransitionResult with new state and effects, or a
        rejection. Accepted transitions bump state.version unless they
        were no-ops.
        """
        handler = self._get_handler(command.command_type)
        if handler is None:
            raise InvariantViolation(f"No handler for command type: {command.command_type}")

        if not command.is_internal:
            rejection = self._validate_command(state, command)
            if rejection:
                logger.info(
                    "match %s: rejected %s from %s: %s",
                    state.match_id, command.command_type.value, command.player_id, rejection.message,
                )
                return TransitionResult.failure(rejection)

        result = handler(state, command)
        if not result.success:
            logger.info(
                "match %s: rejected %s from %s: %s",
                state.match_id, command.command_type.value, command.player_id, result.error,
            )
            return result

        if result.new_state is not state:
            result.new_state = result.new_state._copy_with(version=state.version + 1)
            logger.debug(
                "match %s: %s applied, phase=%s version=%d",
                state.match_id, command.command_type.value,
                result.new_state.phase.value, result.new_state.version,
            )
        return result

    def _validate_command(self, state: MatchState, command: Command) -> Rejection | None:
        """
        Checks shared by every player command.

        Returns a rejection if invalid, None if the handler should run.
        """
        if state.phase == MatchPhase.COMPLETED:
            return Rejection(RejectionCode.GAME_ALREADY_COMPLETED, "Game is over - no actions allowed")

        if command.command_type not in _SEATLESS_COMMANDS:
            if command.player_id is None or command.player_id not in state.players:
                return Rejection.player_not_found(command.player_id)

        return None

    def _get_handler(self, command_type: CommandType):
        """Get the handler function for a command type."""
        handlers = {
            CommandType.JOIN: self._handle_join,
            CommandType.LEAVE: self._handle_leave,
            CommandType.SET_READY: self._handle_set_ready,
            CommandType.UPDATE_SETTINGS: self._handle_update_settings,
            CommandType.START_GAME: self._handle_start_game,
            CommandType.SET_DIRECTION: self._handle_set_direction,
            CommandType.BID: self._handle_bid,
            CommandType.DUDO: self._handle_dudo,
            CommandType.CALZA: self._handle_calza,
            CommandType.DISCONNECT: self._handle_disconnect,
            CommandType.RECONNECT: self._handle_reconnect,
            CommandType.ADVANCE_FROM_ROLLING: self._handle_advance_from_rolling,
            CommandType.ADVANCE_FROM_REVEALING: self._handle_advance_from_revealing,
            CommandType.START_NEXT_ROUND: self._handle_start_next_round,
        }
        return handlers.get(command_type)

    # =========================================================================
    # Shared checks
    # =========================================================================

    @staticmethod
    def _check_phase(state: MatchState, *phases: MatchPhase) -> Rejection | None:
        if state.phase not in phases:
            return Rejection.wrong_phase(phases, state.phase)
        return None

    @staticmethod
    def _check_turn(state: MatchState, player_id: str) -> Rejection | None:
        if state.current_player_id != player_id:
            return Rejection.not_your_turn(player_id)
        status = state.players[player_id].status
        if status != PlayerStatus.ALIVE:
            return Rejection(RejectionCode.NOT_YOUR_TURN, f"{player_id} is {status.value} and cannot act")
        return None

    @staticmethod
    def _require_phase(state: MatchState, phase: MatchPhase, command: str):
        if state.phase != phase:
            raise InvariantViolation(
                f"{command} requires phase {phase.value}, match {state.match_id} is in {state.phase.value}"
            )

    # =========================================================================
    # Lobby
    # =========================================================================

    def _handle_join(self, state: MatchState, command: Command) -> TransitionResult:
        """Seat a player at the end of the canonical order."""
        rejection = self._check_phase(state, MatchPhase.LOBBY)
        if rejection:
            return TransitionResult.failure(rejection)

        player_id = command.player_id
        if not player_id:
            return TransitionResult.failure(
                Rejection(RejectionCode.INVALID_COMMAND, "Join requires a player id")
            )
        if player_id in state.players:
            return TransitionResult.success_with_state(state)
        if state.num_players >= state.settings.max_players:
            return TransitionResult.failure(
                Rejection(RejectionCode.MATCH_FULL, f"Match is full ({state.settings.max_players} players)")
            )

        new_state = state.with_player(
            Player(player_id=player_id, dice_count=state.settings.starting_dice)
        )._copy_with(player_order=state.player_order + (player_id,))
        return TransitionResult.success_with_state(new_state)

    def _handle_leave(self, state: MatchState, command: Command) -> TransitionResult:
        """
        Leave the match.

        In the lobby the seat is released. Once the game is running the
        seat stays and the player is marked disconnected.
        """
        if state.phase != MatchPhase.LOBBY:
            return self._handle_disconnect(state, command)

        player_id = command.player_id
        new_players = {pid: p for pid, p in state.players.items() if pid != player_id}
        new_order = tuple(pid for pid in state.player_order if pid != player_id)
        return TransitionResult.success_with_state(
            state._copy_with(players=new_players, player_order=new_order)
        )

    def _handle_set_ready(self, state: MatchState, command: Command) -> TransitionResult:
        rejection = self._check_phase(state, MatchPhase.LOBBY)
        if rejection:
            return TransitionResult.failure(rejection)

        player = state.players[command.player_id]
        ready = True if command.ready is None else command.ready
        if player.is_ready == ready:
            return TransitionResult.success_with_state(state)
        return TransitionResult.success_with_state(
            state.with_player(player._copy_with(is_ready=ready))
        )

    def _handle_update_settings(self, state: MatchState, command: Command) -> TransitionResult:
        """Replace lobby settings; seated players take the new starting dice."""
        rejection = self._check_phase(state, MatchPhase.LOBBY)
        if rejection:
            return TransitionResult.failure(rejection)

        settings = command.settings
        if settings is None:
            return TransitionResult.failure(
                Rejection(RejectionCode.INVALID_COMMAND, "No settings provided")
            )
        if settings.max_players < state.num_players:
            return TransitionResult.failure(
                Rejection(
                    RejectionCode.MATCH_FULL,
                    f"{state.num_players} players already seated, max_players={settings.max_players}",
                )
            )

        new_players = {
            pid: p._copy_with(dice_count=settings.starting_dice)
            for pid, p in state.players.items()
        }
        return TransitionResult.success_with_state(
            state._copy_with(settings=settings, players=new_players)
        )

    def _handle_start_game(self, state: MatchState, command: Command) -> TransitionResult:
        """Roll everyone in and hand the first turn to the first seat."""
        rejection = self._check_phase(state, MatchPhase.LOBBY)
        if rejection:
            return TransitionResult.failure(rejection)

        settings = command.settings or state.settings
        if state.num_players < MIN_PLAYERS:
            return TransitionResult.failure(
                Rejection(
                    RejectionCode.NOT_ENOUGH_PLAYERS,
                    f"Need at least {MIN_PLAYERS} players, have {state.num_players}",
                )
            )
        if state.num_players > settings.max_players:
            return TransitionResult.failure(
                Rejection(RejectionCode.MATCH_FULL, f"Match allows {settings.max_players} players")
            )

        effects = []
        new_players = {}
        for pid in state.player_order:
            dice = self.dice.roll(settings.starting_dice)
            new_players[pid] = state.players[pid]._copy_with(
                dice_count=settings.starting_dice,
                current_dice=dice,
                calza_count=0,
                status=PlayerStatus.ALIVE,
            )
            effects.append(DiceRolled(player_id=pid, dice=dice))

        new_state = state._copy_with(
            settings=settings,
            players=new_players,
            phase=MatchPhase.ROLLING,
            current_player_id=first_eligible(state.player_order, new_players),
            direction=Direction.CLOCKWISE,
            round_number=1,
            current_wager=None,
            is_palifico=False,
            palifico_player_id=None,
            palifico_value_lock=None,
            last_total_dice=None,
            pending_round_result=None,
            winner_id=None,
            win_method=None,
        )
        logger.info("match %s: game started with %d players", state.match_id, state.num_players)
        return TransitionResult.success_with_state(new_state, effects)

    # =========================================================================
    # Player actions
    # =========================================================================

    def _handle_set_direction(self, state: MatchState, command: Command) -> TransitionResult:
        """The round's starter picks the direction before the first bid."""
        rejection = (
            self._check_phase(state, MatchPhase.AWAITING_FIRST_BID)
            or self._check_turn(state, command.player_id)
        )
        if rejection:
            return TransitionResult.failure(rejection)
        if command.direction is None:
            return TransitionResult.failure(
                Rejection(RejectionCode.INVALID_COMMAND, "No direction provided")
            )
        if command.direction == state.direction:
            return TransitionResult.success_with_state(state)
        return TransitionResult.success_with_state(state._copy_with(direction=command.direction))

    def _handle_bid(self, state: MatchState, command: Command) -> TransitionResult:
        """Validate and place a wager, then pass the turn."""
        rejection = (
            self._check_phase(state, *BIDDING_PHASES)
            or self._check_turn(state, command.player_id)
        )
        if rejection:
            return TransitionResult.failure(rejection)
        if command.count is None or command.value is None:
            return TransitionResult.failure(Rejection.invalid_bid("count and value are required"))

        proposed = Wager(player_id=command.player_id, count=command.count, value=command.value)
        total = state.total_dice_on_table()
        verdict = validate_bid(
            state.current_wager,
            proposed,
            state.is_palifico,
            state.palifico_value_lock,
            total,
        )
        if not verdict.ok:
            return TransitionResult.failure(Rejection.invalid_bid(verdict.reason))

        lock = state.palifico_value_lock
        if verdict.lock_value is not None:
            lock = verdict.lock_value

        following = next_player(state.player_order, state.players, command.player_id, state.direction)
        if following is None:
            raise InvariantViolation(f"match {state.match_id}: no eligible player after a bid")

        new_state = state._copy_with(
            current_wager=proposed,
            palifico_value_lock=lock,
            phase=MatchPhase.BIDDING,
            current_player_id=following,
            last_total_dice=total,
        )
        return TransitionResult.success_with_state(new_state, [WagerPlaced(wager=proposed)])

    def _handle_dudo(self, state: MatchState, command: Command) -> TransitionResult:
        """Challenge the current wager and reveal the table."""
        player_id = command.player_id
        rejection = (
            self._check_phase(state, *BIDDING_PHASES)
            or self._check_turn(state, player_id)
        )
        if rejection:
            return TransitionResult.failure(rejection)

        wager = state.current_wager
        if wager is None:
            return TransitionResult.failure(
                Rejection(RejectionCode.NO_ACTIVE_WAGER, "No wager to challenge")
            )
        if wager.player_id == player_id:
            return TransitionResult.failure(
                Rejection(RejectionCode.INVALID_COMMAND, "Cannot call dudo on your own bid")
            )

        outcome = resolve(wager, state.players, state.is_palifico)
        dudo = resolve_dudo(outcome, wager, player_id)
        result = RoundResult(
            action="dudo",
            actor_id=player_id,
            bidder_id=wager.player_id,
            wager=wager,
            actual_count=outcome.actual_count,
            per_value_totals=outcome.per_value_totals,
            winner_id=dudo.winner_id,
            loser_id=dudo.loser_id,
            dice_deltas={dudo.loser_id: -1},
        )
        logger.info(
            "match %s: %s called dudo on %dx%d, table shows %d, %s loses a die",
            state.match_id, player_id, wager.count, wager.value, outcome.actual_count, dudo.loser_id,
        )
        return self._reveal(state, result)

    def _handle_calza(self, state: MatchState, command: Command) -> TransitionResult:
        """
        Claim the current wager is exact.

        The current player may call it on someone else's wager; with
        ghost mode on, any ghost may interrupt during bidding.
        """
        player_id = command.player_id
        player = state.players[player_id]

        if player.status == PlayerStatus.GHOST:
            return self._ghost_calza(state, player)

        rejection = (
            self._check_phase(state, *BIDDING_PHASES)
            or self._check_turn(state, player_id)
        )
        if rejection:
            return TransitionResult.failure(rejection)

        wager = state.current_wager
        if wager is None:
            return TransitionResult.failure(
                Rejection(RejectionCode.NO_ACTIVE_WAGER, "No wager to calza")
            )
        if wager.player_id == player_id:
            return TransitionResult.failure(
                Rejection(RejectionCode.SELF_CALZA_FORBIDDEN, "Cannot calza your own bid")
            )

        outcome = resolve(wager, state.players, state.is_palifico)
        calza = resolve_calza(outcome, wager, player_id)
        result = RoundResult(
            action="calza",
            actor_id=player_id,
            bidder_id=wager.player_id,
            wager=wager,
            actual_count=outcome.actual_count,
            per_value_totals=outcome.per_value_totals,
            winner_id=player_id if calza.success else None,
            loser_id=None if calza.success else player_id,
            success=calza.success,
            dice_deltas={player_id: calza.dice_delta},
            calza_credit=player_id if calza.success else None,
        )
        logger.info(
            "match %s: %s called calza on %dx%d, table shows %d (%s)",
            state.match_id, player_id, wager.count, wager.value, outcome.actual_count,
            "exact" if calza.success else "missed",
        )
        return self._reveal(state, result)

    def _ghost_calza(self, state: MatchState, ghost: Player) -> TransitionResult:
        """
        Ghost calza: no dice at stake.

        Success banks a calza (and a die plus revival when
        ghost_calza_revives is on); failure ends the ghost for good.
        """
        if not state.settings.ghost_mode:
            return TransitionResult.failure(
                Rejection(RejectionCode.INVALID_COMMAND, "Ghost mode is disabled")
            )
        rejection = self._check_phase(state, MatchPhase.BIDDING)
        if rejection:
            return TransitionResult.failure(rejection)

        wager = state.current_wager
        if wager is None:
            return TransitionResult.failure(
                Rejection(RejectionCode.NO_ACTIVE_WAGER, "No wager to calza")
            )

        outcome = resolve(wager, state.players, state.is_palifico)
        calza = resolve_calza(outcome, wager, ghost.player_id)
        revive = calza.success and state.settings.ghost_calza_revives
        result = RoundResult(
            action="calza",
            actor_id=ghost.player_id,
            bidder_id=wager.player_id,
            wager=wager,
            actual_count=outcome.actual_count,
            per_value_totals=outcome.per_value_totals,
            winner_id=ghost.player_id if calza.success else None,
            loser_id=None if calza.success else ghost.player_id,
            success=calza.success,
            dice_deltas={ghost.player_id: 1} if revive else {},
            calza_credit=ghost.player_id if calza.success else None,
            eliminate_ghost=None if calza.success else ghost.player_id,
            revive_ghost=ghost.player_id if revive else None,
        )
        logger.info(
            "match %s: ghost %s called calza on %dx%d, table shows %d",
            state.match_id, ghost.player_id, wager.count, wager.value, outcome.actual_count,
        )
        return self._reveal(state, result)

    def _reveal(self, state: MatchState, result: RoundResult) -> TransitionResult:
        new_state = state._copy_with(
            pending_round_result=result,
            phase=MatchPhase.REVEALING,
        )
        return TransitionResult.success_with_state(new_state, [RoundResolved(result=result)])

    # =========================================================================
    # Connection
    # =========================================================================

    def _handle_disconnect(self, state: MatchState, command: Command) -> TransitionResult:
        """
        Mark an alive player disconnected.

        Their dice stay on the table. If they held the turn before the
        reveal, the turn moves on so the match never waits for them; with
        nobody left to take it the turn is emptied.
        """
        if state.phase == MatchPhase.LOBBY:
            return TransitionResult.failure(Rejection.wrong_phase(
                tuple(p for p in MatchPhase if p not in (MatchPhase.LOBBY, MatchPhase.COMPLETED)),
                state.phase,
            ))

        player = state.players[command.player_id]
        if player.status != PlayerStatus.ALIVE:
            return TransitionResult.success_with_state(state)

        new_state = state.with_player(player._copy_with(status=PlayerStatus.DISCONNECTED))
        if state.current_player_id == player.player_id and state.phase in (
            MatchPhase.ROLLING, *BIDDING_PHASES,
        ):
            following = next_player(
                new_state.player_order, new_state.players, player.player_id, state.direction,
            )
            # None when nobody is left to act; the first Reconnect takes it
            new_state = new_state._copy_with(current_player_id=following)
        logger.info("match %s: %s disconnected", state.match_id, player.player_id)
        return TransitionResult.success_with_state(new_state)

    def _handle_reconnect(self, state: MatchState, command: Command) -> TransitionResult:
        """
        Restore a disconnected player. Idempotent for everyone else.

        Phase is left alone and a held turn is never moved. An empty turn
        (everyone had dropped) goes to the player coming back.
        """
        player = state.players[command.player_id]
        if player.status != PlayerStatus.DISCONNECTED:
            return TransitionResult.success_with_state(state)

        new_state = state.with_player(player._copy_with(status=PlayerStatus.ALIVE))
        if state.current_player_id is None and state.phase in (MatchPhase.ROLLING, *BIDDING_PHASES):
            new_state = new_state._copy_with(current_player_id=player.player_id)
        logger.info("match %s: %s reconnected", state.match_id, player.player_id)
        return TransitionResult.success_with_state(new_state)

    # =========================================================================
    # Internal transitions
    # =========================================================================

    def _handle_advance_from_rolling(self, state: MatchState, command: Command) -> TransitionResult:
        """
        End the roll. A starter who is still disconnected hands the turn
        to the next alive player (or leaves it empty for Reconnect).
        """
        self._require_phase(state, MatchPhase.ROLLING, "AdvanceFromRolling")
        current = state.current_player
        starter = state.current_player_id
        if current is None or current.status != PlayerStatus.ALIVE:
            starter = None
            if current is not None:
                starter = next_player(state.player_order, state.players, current.player_id, state.direction)
        return TransitionResult.success_with_state(
            state._copy_with(phase=MatchPhase.AWAITING_FIRST_BID, current_player_id=starter)
        )

    def _handle_advance_from_revealing(self, state: MatchState, command: Command) -> TransitionResult:
        self._require_phase(state, MatchPhase.REVEALING, "AdvanceFromRevealing")
        return TransitionResult.success_with_state(
            state._copy_with(phase=MatchPhase.ROUND_COMPLETE)
        )

    def _handle_start_next_round(self, state: MatchState, command: Command) -> TransitionResult:
        """
        Settle the revealed round and either finish the match or roll again.

        Win conditions are checked in order: last standing, seven calzas,
        seven dice.
        """
        self._require_phase(state, MatchPhase.ROUND_COMPLETE, "StartNextRound")
        result = state.pending_round_result
        if result is None:
            raise InvariantViolation(f"match {state.match_id}: round complete without a result")

        settings = state.settings
        players = dict(state.players)
        effects = []
        phantom_die = None
        newly_single = None

        for pid, delta in result.dice_deltas.items():
            player = players[pid]
            new_count, overflowed = apply_dice_delta(player.dice_count, delta)
            if overflowed:
                phantom_die = pid
            if player.dice_count > 1 and new_count == 1:
                newly_single = pid
            players[pid] = player._copy_with(dice_count=new_count)

        if result.calza_credit:
            credited = players[result.calza_credit]
            players[credited.player_id] = credited._copy_with(calza_count=credited.calza_count + 1)

        if result.revive_ghost:
            players[result.revive_ghost] = players[result.revive_ghost]._copy_with(
                status=PlayerStatus.ALIVE,
            )

        if result.eliminate_ghost:
            players[result.eliminate_ghost] = players[result.eliminate_ghost]._copy_with(
                status=PlayerStatus.DEAD, current_dice=(),
            )
            effects.append(PlayerEliminated(player_id=result.eliminate_ghost, status=PlayerStatus.DEAD))

        for pid in result.dice_deltas:
            player = players[pid]
            if player.dice_count == 0 and player.dice_on_table:
                status = PlayerStatus.GHOST if settings.ghost_mode else PlayerStatus.DEAD
                players[pid] = player._copy_with(status=status, current_dice=())
                effects.append(PlayerEliminated(player_id=pid, status=status))
                logger.info("match %s: %s is out (%s)", state.match_id, pid, status.value)

        winner = self._check_win(state, players, result, phantom_die)
        if winner:
            winner_id, method = winner
            effects.append(GameWon(winner_id=winner_id, method=method))
            logger.info("match %s: %s wins by %s", state.match_id, winner_id, method.value)
            new_state = state._copy_with(
                players=players,
                phase=MatchPhase.COMPLETED,
                current_player_id=None,
                current_wager=None,
                palifico_value_lock=None,
                pending_round_result=None,
                winner_id=winner_id,
                win_method=method,
            )
            return TransitionResult.success_with_state(new_state, effects)

        for pid in state.player_order:
            player = players[pid]
            if player.dice_on_table:
                dice = self.dice.roll(player.dice_count)
                players[pid] = player._copy_with(current_dice=dice)
                effects.append(DiceRolled(player_id=pid, dice=dice))
            elif player.current_dice:
                players[pid] = player._copy_with(current_dice=())

        is_palifico = settings.palifico_rules and newly_single is not None
        if is_palifico:
            starter = newly_single
        else:
            # Disconnected seats may open; AdvanceFromRolling passes the turn on
            starter = next_player(
                state.player_order, players, result.subject_id, state.direction,
                require_connected=False,
            )

        new_state = state._copy_with(
            players=players,
            phase=MatchPhase.ROLLING,
            current_player_id=starter,
            direction=Direction.CLOCKWISE,
            round_number=state.round_number + 1,
            current_wager=None,
            is_palifico=is_palifico,
            palifico_player_id=newly_single if is_palifico else None,
            palifico_value_lock=None,
            last_total_dice=None,
            pending_round_result=None,
        )
        if is_palifico:
            logger.info("match %s: round %d is palifico for %s",
                        state.match_id, new_state.round_number, newly_single)
        return TransitionResult.success_with_state(new_state, effects)

    @staticmethod
    def _check_win(
        state: MatchState,
        players: dict[str, Player],
        result: RoundResult,
        phantom_die: str | None,
    ) -> tuple[str, WinMethod] | None:
        contenders = [pid for pid in state.player_order if players[pid].dice_on_table]
        if not contenders:
            raise InvariantViolation(f"match {state.match_id}: no players left in contention")
        if len(contenders) == 1:
            return contenders[0], WinMethod.LAST_STANDING

        credited = result.calza_credit
        if (
            state.settings.seven_calzas_wins
            and credited
            and players[credited].calza_count >= SEVEN_CALZAS
        ):
            return credited, WinMethod.SEVEN_CALZAS

        if state.settings.seven_dice_wins and phantom_die:
            return phantom_die, WinMethod.SEVEN_DICE

        return None


def apply_command(state: MatchState, command: Command, dice: DiceEngine | None = None) -> TransitionResult:
    """
    Convenience function to apply a command.

    Creates a GameStateMachine and applies the command.
    """
    machine = GameStateMachine(dice=dice or DiceEngine())
    return machine.apply(state, command)
