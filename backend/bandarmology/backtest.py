"""
Backtest Simulator for the bandar-strength strategy.

Replays a synthetic price history per symbol, scores each day with a flat
historical score and trades the top-ranked BUY signals:

    - buy: top 5 BUY signals, 15% of cash each, whole lots, 0.15% fee
    - sell: SELL signal, +15% take-profit, -7% stop-loss or 10 days held, 0.25% fee

All randomness comes from the injected numpy Generator, so a seeded run is
reproducible.
"""
import logging
import math
from datetime import date
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field

from .config import LOT_SIZE
from .exceptions import InvalidInputError
from .models import BUY, HOLD, SELL, validate_model, validate_rows
from .utils import clamp, safe_div

logger = logging.getLogger(__name__)

TOP_N = 5
POSITION_FRACTION = 0.15
BUY_FEE = 0.0015
SELL_FEE = 0.0025
TAKE_PROFIT_PCT = 15.0
STOP_LOSS_PCT = -7.0
MAX_HOLD_DAYS = 10
BUY_SCORE = 70
SELL_SCORE = 40


class BacktestConfig(BaseModel):
    initial_fund: float = Field(..., gt=0)
    weeks: int = Field(default=4, ge=1, le=52)
    strategy: str = 'bandar_strength'
    end_date: Optional[date] = None


class CurrentPrice(BaseModel):
    symbol: str = Field(..., min_length=1)
    close: float = Field(..., gt=0)


class Company(BaseModel):
    symbol: str
    name: Optional[str] = None


def generate_price_history(current_price: float, days: int, rng: np.random.Generator,
                           end_date=None, volatility: float = 0.02) -> pd.DataFrame:
    """
    Random walk with a slight upward drift, one row per business day ending at end_date.

    Returns:
        DataFrame indexed by date with open, high, low, close, volume, change_pct
    """
    end = pd.Timestamp(end_date) if end_date is not None else pd.Timestamp.today().normalize()
    index = pd.bdate_range(end=end, periods=days)

    steps = (rng.random(days) - 0.48) * volatility
    close = current_price * np.cumprod(1 + steps)
    df = pd.DataFrame(
        {
            'open': close * (1 + (rng.random(days) - 0.5) * 0.01),
            'high': close * (1 + rng.random(days) * 0.02),
            'low': close * (1 - rng.random(days) * 0.02),
            'close': close,
            'volume': np.floor(10_000_000 + rng.random(days) * 50_000_000),
        },
        index=index,
    )
    df['change_pct'] = (df['close'].pct_change() * 100).fillna(0.0)
    return df


def generate_historical_indicators(rng: np.random.Generator) -> Dict[str, float]:
    """Synthetic flow indicators for one symbol/day."""
    foreign_bias = 1 if rng.random() > 0.4 else -1
    bandar_bias = 1 if rng.random() > 0.35 else -1
    return {
        'foreign_net': foreign_bias * math.floor(rng.random() * 1_000_000_000),
        'bandar_net': bandar_bias * math.floor(rng.random() * 5_000_000),
        'large_lot_ratio': float(rng.random() * 0.5),
        'sid_change': math.floor((rng.random() - 0.5) * 500),
        'queue_score': math.floor(rng.random() * 100),
    }


def historical_score(change_pct: float, indicators: Dict[str, float]) -> int:
    score = 50

    foreign = indicators['foreign_net']
    if foreign > 500_000_000:
        score += 15
    elif foreign > 100_000_000:
        score += 10
    elif foreign < -500_000_000:
        score -= 15
    elif foreign < -100_000_000:
        score -= 10

    bandar = indicators['bandar_net']
    if bandar > 2_000_000:
        score += 20
    elif bandar > 500_000:
        score += 15
    elif bandar < -2_000_000:
        score -= 20
    elif bandar < -500_000:
        score -= 15

    ratio = indicators['large_lot_ratio']
    if ratio > 0.4:
        score += 10
    elif ratio > 0.25:
        score += 5

    sid = indicators['sid_change']
    if sid > 100:
        score += 5
    elif sid < -100:
        score -= 5

    queue = indicators['queue_score']
    if queue > 70:
        score += 10
    elif queue > 50:
        score += 5
    elif queue < 30:
        score -= 5

    if change_pct > 5:
        score += 5
    elif change_pct < -5:
        score -= 5

    return int(clamp(score, 0, 100))


def historical_signal(score: int) -> str:
    if score >= BUY_SCORE:
        return BUY
    if score < SELL_SCORE:
        return SELL
    return HOLD


def max_drawdown(values: pd.Series) -> float:
    """Largest peak-to-trough decline, in percent."""
    if values.empty:
        return 0.0
    peak = values.cummax()
    drawdown = ((peak - values) / peak.where(peak > 0)).fillna(0.0) * 100
    return round(float(drawdown.max()), 2)


class _Portfolio:
    def __init__(self, cash: float):
        self.cash = cash
        self.positions: Dict[str, Dict[str, Any]] = {}
        self.trades: List[Dict[str, Any]] = []
        self.daily_values: List[Dict[str, Any]] = []

    def buy(self, symbol: str, price: float, score: int, day: int, day_str: str) -> None:
        if self.cash <= price * LOT_SIZE:
            return
        shares = math.floor(self.cash * POSITION_FRACTION / price / LOT_SIZE) * LOT_SIZE
        if shares < LOT_SIZE:
            return
        cost = shares * price
        fee = cost * BUY_FEE
        if self.cash < cost + fee:
            return
        self.cash -= cost + fee

        position = self.positions.get(symbol)
        if position:
            position['shares'] += shares
            position['cost_basis'] += cost
            position['fees'] += fee
            position['avg_price'] = position['cost_basis'] / position['shares']
        else:
            self.positions[symbol] = {
                'shares': shares,
                'avg_price': price,
                'cost_basis': cost,
                'fees': fee,
                'entry_day': day,
                'entry_date': day_str,
                'entry_score': score,
            }
        self.trades.append({
            'date': day_str,
            'symbol': symbol,
            'action': 'BUY',
            'shares': shares,
            'price': price,
            'value': cost,
            'fee': fee,
            'score': score,
        })

    def sell(self, symbol: str, price: float, score: int, day_str: str) -> None:
        position = self.positions.pop(symbol)
        value = position['shares'] * price
        fee = value * SELL_FEE
        self.cash += value - fee
        invested = position['cost_basis'] + position['fees']
        pnl = value - fee - invested
        self.trades.append({
            'date': day_str,
            'symbol': symbol,
            'action': 'SELL',
            'shares': position['shares'],
            'price': price,
            'value': value,
            'fee': fee,
            'pnl': pnl,
            'pnl_pct': safe_div(pnl, invested) * 100,
            'exit_score': score,
        })

    def should_sell(self, symbol: str, price: float, signal: str, day: int) -> bool:
        position = self.positions[symbol]
        unrealized = safe_div(price - position['avg_price'], position['avg_price']) * 100
        return (
            signal == SELL
            or unrealized >= TAKE_PROFIT_PCT
            or unrealized <= STOP_LOSS_PCT
            or day - position['entry_day'] >= MAX_HOLD_DAYS
        )

    def value(self, closes: Dict[str, float]) -> float:
        return self.cash + sum(p['shares'] * closes[s] for s, p in self.positions.items() if s in closes)


def _summarize(portfolio: _Portfolio, initial_fund: float, trading_days: int) -> Dict[str, Any]:
    final_value = portfolio.daily_values[-1]['value'] if portfolio.daily_values else initial_fund
    closed = [t for t in portfolio.trades if t['action'] == 'SELL']
    winners = [t for t in closed if t['pnl'] > 0]
    losers = [t for t in closed if t['pnl'] <= 0]

    gross_win = sum(t['pnl'] for t in winners)
    gross_loss = sum(abs(t['pnl']) for t in losers)
    # None when there are no losses to divide by
    profit_factor = round(gross_win / gross_loss, 2) if gross_loss > 0 else None

    values = pd.Series([dv['value'] for dv in portfolio.daily_values], dtype=float)
    return {
        'initial_fund': initial_fund,
        'final_value': round(final_value),
        'total_return': round(safe_div(final_value - initial_fund, initial_fund) * 100, 2),
        'absolute_return': round(final_value - initial_fund),
        'trading_days': trading_days,
        'win_rate': round(safe_div(len(winners), len(closed)) * 100, 2),
        'total_trades': len(closed),
        'winning_trades': len(winners),
        'losing_trades': len(losers),
        'avg_win_pct': round(float(np.mean([t['pnl_pct'] for t in winners])), 2) if winners else 0.0,
        'avg_loss_pct': round(float(np.mean([t['pnl_pct'] for t in losers])), 2) if losers else 0.0,
        'profit_factor': profit_factor,
        'max_drawdown': max_drawdown(values),
    }


def run_backtest(config, current_prices, companies=None,
                 rng: Optional[np.random.Generator] = None) -> Dict[str, Any]:
    """
    Simulate the strategy over `config.weeks` weeks of synthetic history.

    Args:
        config: BacktestConfig (model or dict).
        current_prices: [{symbol, close}] latest prices; each seeds one random walk.
        companies: Optional [{symbol, name}] for display names in holdings.
        rng: numpy Generator; a fresh unseeded one when omitted.

    Returns:
        Dict with config, summary, trades, daily_values, current_holdings, equity_curve
    """
    config = validate_model(BacktestConfig, config, 'backtest config')
    prices = validate_rows(CurrentPrice, current_prices, 'current_prices')
    if not prices:
        raise InvalidInputError("current_prices must contain at least one symbol")
    names = {c.symbol: c.name or c.symbol for c in validate_rows(Company, companies, 'companies')}
    rng = rng if rng is not None else np.random.default_rng()

    trading_days = config.weeks * 5
    histories = {
        p.symbol: generate_price_history(p.close, trading_days, rng, config.end_date)
        for p in prices
    }
    portfolio = _Portfolio(config.initial_fund)

    for day in range(trading_days):
        scored = []
        for symbol, history in histories.items():
            bar = history.iloc[day]
            score_value = historical_score(float(bar['change_pct']), generate_historical_indicators(rng))
            scored.append({
                'symbol': symbol,
                'close': float(bar['close']),
                'score': score_value,
                'signal': historical_signal(score_value),
            })
        scored.sort(key=lambda s: (-s['score'], s['symbol']))
        by_symbol = {s['symbol']: s for s in scored}
        day_str = histories[scored[0]['symbol']].index[day].date().isoformat()

        for stock in scored[:TOP_N]:
            if stock['signal'] == BUY:
                portfolio.buy(stock['symbol'], stock['close'], stock['score'], day, day_str)

        for symbol in list(portfolio.positions):
            stock = by_symbol.get(symbol)
            if stock and portfolio.should_sell(symbol, stock['close'], stock['signal'], day):
                portfolio.sell(symbol, stock['close'], stock['score'], day_str)

        closes = {s: v['close'] for s, v in by_symbol.items()}
        total = portfolio.value(closes)
        portfolio.daily_values.append({
            'date': day_str,
            'value': total,
            'cash': portfolio.cash,
            'invested': total - portfolio.cash,
        })

    latest = {p.symbol: p.close for p in prices}
    holdings = []
    for symbol, position in portfolio.positions.items():
        current = latest.get(symbol, position['avg_price'])
        market_value = position['shares'] * current
        unrealized = market_value - position['cost_basis']
        holdings.append({
            'symbol': symbol,
            'name': names.get(symbol, symbol),
            'shares': position['shares'],
            'avg_price': position['avg_price'],
            'current_price': current,
            'market_value': market_value,
            'cost_basis': position['cost_basis'],
            'unrealized_pnl': unrealized,
            'unrealized_pnl_pct': safe_div(unrealized, position['cost_basis']) * 100,
            'entry_date': position['entry_date'],
            'entry_score': position['entry_score'],
        })

    summary = _summarize(portfolio, config.initial_fund, trading_days)
    logger.info(
        f"Backtest {config.strategy}: {len(prices)} symbols, {trading_days} days, "
        f"return {summary['total_return']}%, {summary['total_trades']} closed trades"
    )
    return {
        'config': config.model_dump(mode='json'),
        'summary': summary,
        'trades': portfolio.trades,
        'daily_values': portfolio.daily_values,
        'current_holdings': holdings,
        'equity_curve': [
            {
                'date': dv['date'],
                'value': dv['value'],
                'return': safe_div(dv['value'] - config.initial_fund, config.initial_fund) * 100,
            }
            for dv in portfolio.daily_values
        ],
    }
