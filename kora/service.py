"""Convenience service layer for the HTTP API and other clients."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from .cards import Card, card_label, deserialize_card, serialize_card
from .codec import player_to_dict, transaction_to_dict
from .match import MatchEngine
from .state import MatchState, MoneyLike, Player
from .sync import MatchAuthority, SubmitResult


@dataclass
class TrickPlayView:
    player_id: str
    card: dict
    label: str


@dataclass
class TrickView:
    leader: str
    demanded_suit: Optional[str]
    plays: list[TrickPlayView]


@dataclass
class MatchView:
    match_id: str
    status: str
    players: list[dict]
    bet_amount: str
    current_turn: int
    current_player_id: Optional[str]
    demanded_suit: Optional[str]
    hand: list[dict]
    hand_labels: list[str]
    legal_moves: list[dict]
    legal_move_labels: list[str]
    opponent_cards: int
    tricks_won: dict[str, int]
    trick: Optional[TrickView]
    trick_history: list[dict]
    winner_id: Optional[str]
    victory_type: Optional[str]
    kora_multiplier: int


class MatchService:
    """Facade around ``MatchAuthority`` that speaks in plain dictionaries."""

    def __init__(self, authority: MatchAuthority) -> None:
        self.authority = authority

    @property
    def engine(self) -> MatchEngine:
        return self.authority.engine

    # Lifecycle -------------------------------------------------------------

    def start_match(
        self,
        players: Sequence[Player],
        bet_amount: MoneyLike,
        *,
        seed: Optional[str] = None,
        first_player_id: Optional[str] = None,
        match_id: Optional[str] = None,
    ) -> MatchState:
        return self.authority.create_match(
            players, bet_amount, match_id=match_id, seed=seed, first_player_id=first_player_id
        )

    # Actions ---------------------------------------------------------------

    def play_card(self, match_id: str, player_id: str, expected_turn: int, card_payload: dict) -> SubmitResult:
        card = deserialize_card(card_payload)
        return self.authority.submit_play(match_id, expected_turn, card, player_id)

    def concede(self, match_id: str, player_id: str, expected_turn: Optional[int] = None) -> MatchState:
        return self.authority.concede(match_id, player_id, expected_turn=expected_turn)

    def transactions(self, match_id: str) -> list[dict]:
        self.authority.store.get_match(match_id)
        return [transaction_to_dict(entry) for entry in self.authority.store.list_transactions(match_id)]

    # Views -----------------------------------------------------------------

    def get_match_view(self, match_id: str, perspective: str) -> MatchView:
        return self.view_of(self.authority.load(match_id), perspective)

    def view_of(self, state: MatchState, perspective: str) -> MatchView:
        opponent = state.opponent_of(perspective)
        hand = sorted(state.hand_of(perspective), key=lambda card: (card.suit.value, card.rank))
        legal: list[Card] = self.engine.legal_moves(state, perspective)

        trick_view: Optional[TrickView] = None
        if state.current_trick is not None and not state.current_trick.is_empty():
            demanded = state.current_trick.demanded_suit()
            trick_view = TrickView(
                leader=state.current_trick.leader,
                demanded_suit=demanded.value if demanded else None,
                plays=[
                    TrickPlayView(player_id=p, card=serialize_card(c), label=card_label(c))
                    for p, c in state.current_trick.plays
                ],
            )

        trick_history = []
        for lead, follow in state.completed_tricks():
            result = state.result_for_turn(follow.turn)
            trick_history.append(
                {
                    "lead": {"player_id": lead.player_id, "card": serialize_card(lead.card), "label": card_label(lead.card)},
                    "follow": {
                        "player_id": follow.player_id,
                        "card": serialize_card(follow.card),
                        "label": card_label(follow.card),
                    },
                    "winner_id": result.winner_id if result else None,
                }
            )

        return MatchView(
            match_id=state.match_id,
            status=state.status.value,
            players=[player_to_dict(player) for player in state.players],
            bet_amount=str(state.bet_amount),
            current_turn=state.current_turn,
            current_player_id=state.current_player_id,
            demanded_suit=state.demanded_suit.value if state.demanded_suit else None,
            hand=[serialize_card(card) for card in hand],
            hand_labels=[card_label(card) for card in hand],
            legal_moves=[serialize_card(card) for card in legal],
            legal_move_labels=[card_label(card) for card in legal],
            opponent_cards=len(state.hand_of(opponent)),
            tricks_won={pid: state.tricks_of(pid) for pid in state.player_ids},
            trick=trick_view,
            trick_history=trick_history,
            winner_id=state.winner_id,
            victory_type=state.victory_type.value if state.victory_type else None,
            kora_multiplier=state.kora_multiplier,
        )
