import unittest
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add project root to path
sys.path.append(str(Path(__file__).resolve().parents[1]))

from quant_ninja.LedgerEngine.ledger import (
    admit,
    apply_settlement,
    chronological,
    derive_metrics,
    exposure_breakdown,
    filter_by_status,
    net_result,
    remove,
    select_for_settlement,
)
from quant_ninja.LedgerEngine.models import Bet, BetStatus, GroundingSource, Ledger, RawObservation, SettlementOutcome

T = datetime(2026, 3, 14, 19, 30, tzinfo=timezone.utc)


def observation(event="X", market="spread", odds=2.0, ev=10.0, bookie="A", at=T):
    return RawObservation(event=event, market=market, odds=odds, ev=ev, bookie=bookie, observed_at=at)


def position(bet_id, stake=25.0, odds=2.0, status=BetStatus.PENDING, at=T, event="X", market="spread", bookie="A"):
    return Bet(id=bet_id, event=event, market=market, odds=odds, ev=10.0, bookie=bookie,
               stake=stake, status=status, created_at=at)


class TestAdmission(unittest.TestCase):

    def test_first_candidate_is_sized_and_placed(self):
        result = admit([observation()], Ledger())
        self.assertEqual(result.accepted, 1)

        bet = result.ledger.bets[0]
        self.assertEqual(bet.stake, 25.0)
        self.assertEqual(bet.status, BetStatus.PENDING)
        self.assertEqual(bet.created_at, T)
        self.assertTrue(bet.id.startswith("scan-"))

    def test_repeat_within_ten_minutes_is_duplicate(self):
        ledger = admit([observation()], Ledger()).ledger
        result = admit([observation(at=T + timedelta(milliseconds=300_000))], ledger)
        self.assertEqual(result.accepted, 0)
        self.assertIs(result.ledger, ledger)

    def test_repeat_after_window_is_new_position(self):
        ledger = admit([observation()], Ledger()).ledger
        result = admit([observation(at=T + timedelta(milliseconds=700_000))], ledger)
        self.assertEqual(result.accepted, 1)
        self.assertEqual(len(result.ledger.bets), 2)
        # Newest first; sized off the 975 left after the first stake
        self.assertEqual(result.ledger.bets[0].created_at, T + timedelta(milliseconds=700_000))
        self.assertEqual(result.ledger.bets[0].stake, 24.37)

    def test_window_boundary_is_exclusive(self):
        ledger = admit([observation()], Ledger()).ledger
        result = admit([observation(at=T + timedelta(milliseconds=600_000))], ledger)
        self.assertEqual(result.accepted, 1)

    def test_earlier_sighting_also_deduplicated(self):
        ledger = admit([observation()], Ledger()).ledger
        result = admit([observation(at=T - timedelta(minutes=2))], ledger)
        self.assertEqual(result.accepted, 0)

    def test_dedup_needs_event_and_market(self):
        ledger = admit([observation()], Ledger()).ledger
        result = admit([observation(market="total"), observation(event="Y")], ledger)
        self.assertEqual(result.accepted, 2)

    def test_non_positive_edge_filtered(self):
        result = admit([observation(ev=0), observation(ev=-3.5)], Ledger())
        self.assertEqual(result.accepted, 0)
        self.assertEqual(result.ledger.bets, ())

    def test_zero_stake_filtered(self):
        result = admit([observation()], Ledger(), available_cash=0)
        self.assertEqual(result.accepted, 0)

    def test_batch_sized_from_one_cash_snapshot(self):
        result = admit([observation(event="A"), observation(event="B")], Ledger())
        self.assertEqual([b.stake for b in result.ledger.bets], [25.0, 25.0])
        # Batch order preserved at the front
        self.assertEqual([b.event for b in result.ledger.bets], ["A", "B"])

    def test_batch_not_deduplicated_against_itself(self):
        result = admit([observation(), observation()], Ledger())
        self.assertEqual(result.accepted, 2)

    def test_admit_leaves_input_untouched(self):
        ledger = Ledger()
        admit([observation()], ledger)
        self.assertEqual(ledger.bets, ())

    def test_ids_are_unique(self):
        result = admit([observation(event=str(i)) for i in range(20)], Ledger(), source="live")
        ids = [b.id for b in result.ledger.bets]
        self.assertEqual(len(set(ids)), 20)
        self.assertTrue(all(i.startswith("live-") for i in ids))


class TestMetrics(unittest.TestCase):

    def test_empty_ledger(self):
        m = derive_metrics(Ledger())
        self.assertEqual(m.available_cash, 1000)
        self.assertEqual(m.in_play, 0)
        self.assertEqual(m.current_equity, 1000)
        self.assertEqual(m.win_rate, 0)
        self.assertEqual(m.roi, 0)

    def test_pending_position(self):
        m = derive_metrics(Ledger(bets=(position("a"),)))
        self.assertEqual(m.available_cash, 975)
        self.assertEqual(m.in_play, 25)
        self.assertEqual(m.current_equity, 1000)

    def test_won_position(self):
        ledger = apply_settlement(Ledger(bets=(position("a"),)), [SettlementOutcome(bet_id="a", verdict="WON")])
        m = derive_metrics(ledger)
        # 1000 - 25 + 25 * 2
        self.assertEqual(m.available_cash, 1025)
        self.assertEqual(m.in_play, 0)
        self.assertAlmostEqual(m.roi, 2.5)
        self.assertEqual(m.win_rate, 100)

    def test_lost_position(self):
        ledger = apply_settlement(Ledger(bets=(position("a"),)), [SettlementOutcome(bet_id="a", verdict="LOST")])
        m = derive_metrics(ledger)
        self.assertEqual(m.available_cash, 975)
        self.assertAlmostEqual(m.roi, -2.5)
        self.assertEqual(m.total_losses, 1)

    def test_win_rate_ignores_pending(self):
        ledger = Ledger(bets=(
            position("a", status=BetStatus.WON),
            position("b", status=BetStatus.LOST),
            position("c"),
        ))
        m = derive_metrics(ledger)
        self.assertEqual(m.win_rate, 50)
        self.assertEqual(m.total_bets, 3)

    def test_over_betting_clamps_cash(self):
        ledger = Ledger(bets=tuple(position(str(i), stake=500) for i in range(3)))
        m = derive_metrics(ledger)
        self.assertEqual(m.available_cash, 0)
        self.assertEqual(m.in_play, 1500)
        self.assertEqual(m.current_equity, m.available_cash + m.in_play)

    def test_equity_identity_across_mutations(self):
        ledger = admit([observation(event=e) for e in "ABCD"], Ledger()).ledger
        ids = [b.id for b in ledger.bets]
        steps = [
            apply_settlement(ledger, [SettlementOutcome(bet_id=ids[0], verdict="WON")]),
        ]
        steps.append(apply_settlement(steps[-1], [SettlementOutcome(bet_id=ids[1], verdict="LOST")]))
        steps.append(remove(steps[-1], ids[2]))
        for snapshot in [ledger] + steps:
            m = derive_metrics(snapshot)
            self.assertEqual(m.current_equity, m.available_cash + m.in_play)

    def test_custom_initial_bankroll(self):
        m = derive_metrics(Ledger(bets=(position("a", stake=10, status=BetStatus.LOST),)), initial_bankroll=100)
        self.assertEqual(m.available_cash, 90)
        self.assertAlmostEqual(m.roi, -10)


class TestSettlement(unittest.TestCase):

    def setUp(self):
        self.ledger = Ledger(bets=(position("a"), position("b")))

    def test_only_exact_verdicts_apply(self):
        for verdict in ("PENDING", "won", "WON ", "UNPARSEABLE", ""):
            result = apply_settlement(self.ledger, [SettlementOutcome(bet_id="a", verdict=verdict)])
            self.assertIs(result, self.ledger, verdict)

    def test_note_and_sources_attached(self):
        source = GroundingSource(title="Box score", uri="https://example.com/box")
        result = apply_settlement(self.ledger, [
            SettlementOutcome(bet_id="a", verdict="WON", note="Covered by 4", sources=(source,)),
        ])
        bet = result.get("a")
        self.assertEqual(bet.status, BetStatus.WON)
        self.assertEqual(bet.result_details, "Covered by 4")
        self.assertEqual(bet.grounding_sources, (source,))
        # Immutable fields untouched
        self.assertEqual((bet.stake, bet.odds, bet.event, bet.market), (25.0, 2.0, "X", "spread"))

    def test_default_note(self):
        result = apply_settlement(self.ledger, [SettlementOutcome(bet_id="a", verdict="LOST")])
        self.assertEqual(result.get("a").result_details, "Verified via AI Market Search")

    def test_unknown_id_ignored(self):
        result = apply_settlement(self.ledger, [SettlementOutcome(bet_id="gone", verdict="WON")])
        self.assertIs(result, self.ledger)

    def test_terminal_state_is_final(self):
        won = apply_settlement(self.ledger, [SettlementOutcome(bet_id="a", verdict="WON")])
        again = apply_settlement(won, [SettlementOutcome(bet_id="a", verdict="LOST")])
        self.assertEqual(again.get("a").status, BetStatus.WON)

    def test_outcomes_commute(self):
        a_won = SettlementOutcome(bet_id="a", verdict="WON")
        b_lost = SettlementOutcome(bet_id="b", verdict="LOST")
        one = apply_settlement(apply_settlement(self.ledger, [a_won]), [b_lost])
        two = apply_settlement(apply_settlement(self.ledger, [b_lost]), [a_won])
        self.assertEqual(one, two)
        self.assertEqual(apply_settlement(self.ledger, [b_lost, a_won]), one)

    def test_partial_batch(self):
        result = apply_settlement(self.ledger, [
            SettlementOutcome(bet_id="a", verdict="PENDING"),
            SettlementOutcome(bet_id="b", verdict="WON"),
        ])
        self.assertEqual(result.get("a").status, BetStatus.PENDING)
        self.assertEqual(result.get("b").status, BetStatus.WON)

    def test_select_oldest_five_pending(self):
        bets = [position(f"p{i}", at=T + timedelta(hours=i)) for i in range(7)]
        bets.append(position("settled", status=BetStatus.WON, at=T - timedelta(days=1)))
        # Newest-first storage order
        ledger = Ledger(bets=tuple(reversed(bets)))

        selected = select_for_settlement(ledger)
        self.assertEqual([b.id for b in selected], ["p0", "p1", "p2", "p3", "p4"])

    def test_select_nothing_pending(self):
        ledger = Ledger(bets=(position("a", status=BetStatus.LOST),))
        self.assertEqual(select_for_settlement(ledger), [])


class TestQueries(unittest.TestCase):

    def test_remove(self):
        ledger = Ledger(bets=(position("a"), position("b", status=BetStatus.WON)))
        smaller = remove(ledger, "b")
        self.assertEqual([b.id for b in smaller.bets], ["a"])
        self.assertEqual(derive_metrics(smaller).available_cash, 975)
        self.assertIs(remove(ledger, "missing"), ledger)

    def test_filter_by_status(self):
        ledger = Ledger(bets=(position("a"), position("b", status=BetStatus.WON)))
        self.assertEqual(len(filter_by_status(ledger)), 2)
        self.assertEqual([b.id for b in filter_by_status(ledger, BetStatus.WON)], ["b"])

    def test_net_result(self):
        self.assertAlmostEqual(net_result(position("a", stake=10, odds=2.5, status=BetStatus.WON)), 15)
        self.assertEqual(net_result(position("a", stake=10, status=BetStatus.LOST)), -10)
        self.assertEqual(net_result(position("a", stake=10)), 0)
        self.assertEqual(net_result(position("a", stake=10, status=BetStatus.VOID)), 0)

    def test_chronological(self):
        ledger = Ledger(bets=(position("new", at=T + timedelta(hours=1)), position("old")))
        self.assertEqual([b.id for b in chronological(ledger)], ["old", "new"])

    def test_exposure_breakdown(self):
        ledger = Ledger(bets=(
            position("a", bookie="FanDuel Sportsbook"),
            position("b", bookie="fanduel"),
            position("c", bookie="Pinnacle"),
            position("d", bookie="DraftKings"),
        ))
        breakdown = {row.book: row for row in exposure_breakdown(ledger)}
        self.assertEqual(breakdown["FanDuel"].trades, 2)
        self.assertEqual(breakdown["FanDuel"].percent, 50)
        self.assertEqual(breakdown["Caesars"].trades, 0)

    def test_exposure_breakdown_empty(self):
        self.assertTrue(all(row.percent == 0 for row in exposure_breakdown(Ledger())))


if __name__ == '__main__':
    unittest.main()
