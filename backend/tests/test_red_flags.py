"""Tests for the policy-independent red-flag detector."""
from bandarmology.broker_utils import build_broker_activity
from bandarmology.models import (
    SEVERITY_RANK,
    BrokerConcentration,
    ForeignFlow,
    ForeignStreak,
    IndicatorBundle,
    PriceAction,
    TransactionRow,
    VolumeAnalysis,
)
from bandarmology.red_flags import detect_red_flags

B = 1_000_000_000


def _bundle(ratio=1.0, change=0.0, valid=True, **fields):
    return IndicatorBundle(
        symbol='BBCA',
        volume_analysis=VolumeAnalysis(has_valid_average=valid, volume_ratio=ratio),
        price_action=PriceAction(change_pct=change),
        **fields,
    )


def _seller(code, value):
    return build_broker_activity(TransactionRow(
        code=code, buy_volume=0, buy_value=0, sell_volume=100, sell_value=value,
    ))


def _kinds(report):
    return {f.kind: f.severity for f in report.flags}


class TestRedFlags:

    def test_clean_bundle_is_low_risk(self):
        report = detect_red_flags(_bundle())
        assert report.has_flags is False
        assert report.risk_level == 'LOW'

    def test_distribution_high(self):
        report = detect_red_flags(_bundle(ratio=3.0, change=-4.0))
        assert _kinds(report)['DISTRIBUTION'] == 'HIGH'
        assert SEVERITY_RANK[report.risk_level] >= SEVERITY_RANK['HIGH']

    def test_distribution_critical(self):
        report = detect_red_flags(_bundle(ratio=3.5, change=-6.0))
        assert _kinds(report)['DISTRIBUTION'] == 'CRITICAL'
        assert report.risk_level == 'CRITICAL'

    def test_distribution_needs_valid_average(self):
        report = detect_red_flags(_bundle(ratio=3.0, change=-4.0, valid=False))
        assert 'DISTRIBUTION' not in _kinds(report)

    def test_coordinated_exit(self):
        sellers = tuple(_seller(code, (5 - i) * B) for i, code in enumerate(('DX', 'MG', 'PD')))
        report = detect_red_flags(_bundle(broker_summary=sellers))
        assert _kinds(report)['COORDINATED_EXIT'] == 'HIGH'

    def test_two_sellers_is_not_an_exit(self):
        sellers = (_seller('DX', B), _seller('MG', B))
        assert 'COORDINATED_EXIT' not in _kinds(detect_red_flags(_bundle(broker_summary=sellers)))

    def test_foreign_exodus(self):
        streak = ForeignStreak(detected=True, signal='STRONG_BEARISH', consecutive_days=-10)
        report = detect_red_flags(_bundle(foreign_streak=streak))
        assert _kinds(report)['FOREIGN_EXODUS'] == 'CRITICAL'

    def test_nine_day_sell_streak_is_not_exodus(self):
        streak = ForeignStreak(detected=True, signal='STRONG_BEARISH', consecutive_days=-9)
        assert 'FOREIGN_EXODUS' not in _kinds(detect_red_flags(_bundle(foreign_streak=streak)))

    def test_unsustainable_rally(self):
        report = detect_red_flags(_bundle(ratio=0.8, change=2.0))
        assert _kinds(report) == {'UNSUSTAINABLE_RALLY': 'MEDIUM'}
        assert report.risk_level == 'MEDIUM'

    def test_possible_pump(self):
        report = detect_red_flags(_bundle(ratio=3.5, change=6.0))
        assert _kinds(report)['POSSIBLE_PUMP'] == 'HIGH'

    def test_pump_with_foreign_buying_is_not_flagged(self):
        report = detect_red_flags(_bundle(ratio=3.5, change=6.0, foreign_flow=ForeignFlow(net_value=B)))
        assert 'POSSIBLE_PUMP' not in _kinds(report)

    def test_pump_with_concentration_is_not_flagged(self):
        concentration = BrokerConcentration(detected=True, signal='HIGH_CONCENTRATION')
        report = detect_red_flags(_bundle(ratio=3.5, change=6.0, broker_concentration=concentration))
        assert 'POSSIBLE_PUMP' not in _kinds(report)

    def test_risk_level_is_max_severity(self):
        streak = ForeignStreak(detected=True, signal='STRONG_BEARISH', consecutive_days=-12)
        report = detect_red_flags(_bundle(ratio=0.8, change=2.0, foreign_streak=streak))
        assert set(_kinds(report)) == {'UNSUSTAINABLE_RALLY', 'FOREIGN_EXODUS'}
        assert report.risk_level == 'CRITICAL'
