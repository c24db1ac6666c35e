import logging
from typing import List

from .config import Settings
from .model import Event, Phase, Rejected
from .world import World

logger = logging.getLogger(__name__)


class TurnEngine:
    """Phase state machine: PLAYER -> ENEMY -> PLAYER (turn + 1).

    The only writer of ``world.turn``.
    """

    def __init__(self, world: World, settings: Settings):
        self.world = world
        self.settings = settings

    @property
    def phase(self) -> Phase:
        return self.world.turn.phase

    def income(self) -> int:
        owned = len(self.world.owned_points("player"))
        return owned * self.settings.income_rate + self.settings.base_income

    def end_player_phase(self) -> List[Event] | Rejected:
        """Hand over to the enemy; enemy units start their phase with full AP."""
        if self.phase is not Phase.PLAYER:
            return Rejected("wrong_phase")
        self.world.turn.phase = Phase.ENEMY
        self.world.reset_ap("enemy")
        logger.info(f"[TurnEngine] Turn {self.world.turn.turn}: enemy phase")
        return [Event("phase_changed", self.world.turn.turn, {"phase": Phase.ENEMY.value})]

    def end_enemy_phase(self) -> List[Event] | Rejected:
        """Start the next player phase: turn counter, income, player AP."""
        if self.phase is not Phase.ENEMY:
            return Rejected("wrong_phase")
        turn = self.world.turn
        turn.phase = Phase.PLAYER
        turn.turn += 1
        income = self.income()
        self.world.add_income(income)
        self.world.reset_ap("player")
        self.world.check_invariants()
        logger.info(f"[TurnEngine] Turn {turn.turn}: player phase, income {income}, treasury {self.world.treasury}")
        return [
            Event("income", turn.turn, {"amount": income, "treasury": self.world.treasury}),
            Event("phase_changed", turn.turn, {"phase": Phase.PLAYER.value}),
        ]
