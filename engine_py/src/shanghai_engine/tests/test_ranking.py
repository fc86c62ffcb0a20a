from shanghai_engine.models import GameState, Player
from shanghai_engine.ranking import final_standings, leader_ids


def test_final_standings_lowest_score_wins():
    # 1. Setup
    state = GameState(id="game-1", game_code="ROOM01")
    state.players = [
        Player(id="p1", name="Alice", total_score=120),
        Player(id="p2", name="Bob", total_score=35),
        Player(id="p3", name="Charlie", total_score=80),
    ]

    # 2. Action
    standings = final_standings(state)

    # 3. Assert
    assert [s["player_id"] for s in standings] == ["p2", "p3", "p1"]
    assert [s["position"] for s in standings] == [1, 2, 3]
    assert standings[0] == {"player_id": "p2", "name": "Bob", "total_score": 35, "position": 1}


def test_ties_keep_seat_order():
    state = GameState(id="game-1", game_code="ROOM01")
    state.players = [
        Player(id="p1", name="Alice", total_score=50),
        Player(id="p2", name="Bob", total_score=20),
        Player(id="p3", name="Charlie", total_score=20),
    ]

    assert [s["player_id"] for s in final_standings(state)] == ["p2", "p3", "p1"]
    assert leader_ids(state) == ["p2", "p3"]


def test_leaders_of_empty_game():
    assert leader_ids(GameState(id="game-1", game_code="ROOM01")) == []
