"""Input validation and broker classification tests."""
import datetime

import pytest
from pydantic import ValidationError

from bandarmology.broker_utils import (
    build_broker_activity,
    is_bandar,
    is_big_dog,
    is_foreign,
    is_institutional,
    is_retail,
    sort_by_abs_net,
)
from bandarmology.config import BrokerLists
from bandarmology.exceptions import InvalidInputError
from bandarmology.models import IndicatorBundle, PriceBar, TransactionRow, VolumePoint, validate_model, validate_rows


def _row(code, buy_volume=0, buy_value=0, sell_volume=0, sell_value=0):
    return {
        'code': code,
        'buy_volume': buy_volume,
        'buy_value': buy_value,
        'sell_volume': sell_volume,
        'sell_value': sell_value,
    }


class TestValidation:

    def test_broker_code_normalized(self):
        rows = validate_rows(TransactionRow, [_row(' yu ', 10, 1_000_000)], 'rows')
        assert rows[0].code == 'YU'

    def test_blank_code_rejected(self):
        with pytest.raises(InvalidInputError):
            validate_rows(TransactionRow, [_row('   ', 10, 1_000_000)], 'rows')

    def test_negative_volume_rejected(self):
        with pytest.raises(InvalidInputError) as exc:
            validate_rows(TransactionRow, [_row('YU', -1, 1_000_000)], 'rows')
        assert 'rows[0]' in str(exc.value)
        assert exc.value.errors
        assert isinstance(exc.value, ValueError)

    def test_missing_field_rejected(self):
        with pytest.raises(InvalidInputError):
            validate_model(TransactionRow, {'code': 'YU'}, 'row')

    def test_none_is_empty(self):
        assert validate_rows(TransactionRow, None, 'rows') == []

    @pytest.mark.parametrize("bad", ["YU", {'code': 'YU'}, 42])
    def test_non_sequence_rejected(self, bad):
        with pytest.raises(InvalidInputError):
            validate_rows(TransactionRow, bad, 'rows')

    def test_negative_price_rejected(self):
        with pytest.raises(InvalidInputError):
            validate_model(PriceBar, {'open': 1, 'high': 1, 'low': -1, 'close': 1}, 'price_bar')

    @pytest.mark.parametrize("bar", [
        {'open': 100, 'high': 90, 'low': 95, 'close': 92},
        {'open': 100, 'high': 105, 'low': 95, 'close': 110},
        {'open': 90, 'high': 105, 'low': 95, 'close': 100},
    ])
    def test_inconsistent_ohlc_rejected(self, bar):
        with pytest.raises(InvalidInputError):
            validate_model(PriceBar, bar, 'price_bar')

    def test_flat_bar_accepted(self):
        bar = validate_model(PriceBar, {'open': 500, 'high': 500, 'low': 500, 'close': 500}, 'price_bar')
        assert bar.close == 500

    def test_dates_parsed_at_boundary(self):
        bar = validate_model(PriceBar, {'open': 1, 'high': 1, 'low': 1, 'close': 1,
                                        'date': '2024-04-10'}, 'price_bar')
        assert bar.date == datetime.date(2024, 4, 10)
        with pytest.raises(InvalidInputError):
            validate_rows(VolumePoint, [{'date': '2024-4-9', 'total_volume': 1}], 'volume_history')

    def test_outputs_are_frozen(self):
        bundle = IndicatorBundle(symbol='BBCA')
        with pytest.raises(ValidationError):
            bundle.symbol = 'BBRI'


class TestBrokerUtils:

    def test_membership_is_case_insensitive(self):
        assert is_foreign('yu')
        assert is_institutional('ni')
        assert is_retail('DX')
        assert not is_retail('QZ')

    def test_custom_lists(self):
        lists = BrokerLists(bandar=frozenset({'QZ'}), big_dog=frozenset())
        assert is_bandar('QZ', lists)
        assert not is_bandar('SQ', lists)
        assert not is_big_dog('YU', lists)

    def test_watch_lists(self):
        assert is_bandar('SQ')
        assert is_big_dog('GW')
        assert not is_big_dog('DX')

    def test_average_price_uses_lot_size(self):
        # 1,000,000 IDR over 10 lots of 100 shares = 1,000 per share
        row = TransactionRow(**_row('YU', 10, 1_000_000))
        activity = build_broker_activity(row)
        assert activity.avg_buy_price == pytest.approx(1000.0)
        assert activity.avg_sell_price == 0.0
        assert activity.is_foreign is True
        assert activity.net_value == 1_000_000

    def test_sort_by_abs_net_is_deterministic(self):
        activities = [
            build_broker_activity(TransactionRow(**_row(code, 1, buy, 0, 0)))
            for code, buy in (('ZZ', 100), ('AA', 100), ('MG', 500))
        ]
        assert [a.code for a in sort_by_abs_net(activities)] == ['MG', 'AA', 'ZZ']
