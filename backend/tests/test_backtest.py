"""Tests for the bandar-strength backtest simulator."""
from datetime import date

import numpy as np
import pandas as pd
import pytest

from bandarmology import BacktestConfig, run_backtest
from bandarmology.backtest import (
    generate_price_history,
    historical_score,
    historical_signal,
    max_drawdown,
)
from bandarmology.config import LOT_SIZE
from bandarmology.exceptions import InvalidInputError

PRICES = [
    {'symbol': 'BBCA', 'close': 9500},
    {'symbol': 'BBRI', 'close': 4800},
    {'symbol': 'TLKM', 'close': 3900},
    {'symbol': 'ADRO', 'close': 2500},
    {'symbol': 'ANTM', 'close': 1600},
    {'symbol': 'ASII', 'close': 5200},
]

NEUTRAL = {'foreign_net': 0, 'bandar_net': 0, 'large_lot_ratio': 0.0, 'sid_change': 0, 'queue_score': 50}


def _run(seed=42, weeks=4, **kwargs):
    config = BacktestConfig(initial_fund=100_000_000, weeks=weeks, end_date=date(2024, 6, 28))
    return run_backtest(config, PRICES, rng=np.random.default_rng(seed), **kwargs)


class TestRunBacktest:

    def test_seeded_run_is_reproducible(self):
        assert _run() == _run()

    def test_one_value_per_trading_day(self):
        result = _run(weeks=3)
        assert len(result['daily_values']) == 15
        assert len(result['equity_curve']) == 15
        assert result['summary']['trading_days'] == 15
        assert result['daily_values'][-1]['date'] == '2024-06-28'

    def test_whole_lots_and_no_overdraft(self):
        result = _run()
        for trade in result['trades']:
            assert trade['shares'] % LOT_SIZE == 0
            assert trade['shares'] > 0
        for dv in result['daily_values']:
            assert dv['cash'] >= 0

    def test_summary_shape(self):
        summary = _run()['summary']
        assert summary['initial_fund'] == 100_000_000
        assert summary['total_trades'] == summary['winning_trades'] + summary['losing_trades']
        assert 0 <= summary['win_rate'] <= 100
        assert summary['max_drawdown'] >= 0
        assert summary['profit_factor'] is None or isinstance(summary['profit_factor'], float)

    def test_holdings_use_company_names(self):
        result = _run(companies=[{'symbol': 'BBCA', 'name': 'Bank Central Asia'}])
        for holding in result['current_holdings']:
            if holding['symbol'] == 'BBCA':
                assert holding['name'] == 'Bank Central Asia'
            else:
                assert holding['name'] == holding['symbol']

    def test_config_echoed_as_json(self):
        result = _run()
        assert result['config']['end_date'] == '2024-06-28'
        assert result['config']['strategy'] == 'bandar_strength'

    def test_invalid_config(self):
        with pytest.raises(InvalidInputError):
            run_backtest({'initial_fund': 0}, PRICES)
        with pytest.raises(InvalidInputError):
            run_backtest({'initial_fund': 1_000_000, 'weeks': 60}, PRICES)

    def test_empty_prices(self):
        with pytest.raises(InvalidInputError):
            run_backtest({'initial_fund': 1_000_000}, [])


class TestHistoricalScore:

    def test_neutral_day(self):
        assert historical_score(0.0, NEUTRAL) == 50

    def test_clamped_to_hundred(self):
        hot = {'foreign_net': 900_000_000, 'bandar_net': 4_000_000, 'large_lot_ratio': 0.45,
               'sid_change': 200, 'queue_score': 90}
        assert historical_score(6.0, hot) == 100

    def test_signal_cuts(self):
        assert historical_signal(70) == 'BUY'
        assert historical_signal(69) == 'HOLD'
        assert historical_signal(40) == 'HOLD'
        assert historical_signal(39) == 'SELL'


def test_price_history_shape():
    df = generate_price_history(1000, 10, np.random.default_rng(7), end_date=date(2024, 6, 28))
    assert list(df.columns) == ['open', 'high', 'low', 'close', 'volume', 'change_pct']
    assert len(df) == 10
    assert df.index[-1] == pd.Timestamp('2024-06-28')
    assert df['change_pct'].iloc[0] == 0.0
    assert (df['high'] >= df['close']).all()
    assert (df['low'] <= df['close']).all()


def test_max_drawdown():
    assert max_drawdown(pd.Series([100.0, 120.0, 90.0, 130.0])) == 25.0
    assert max_drawdown(pd.Series([], dtype=float)) == 0.0
