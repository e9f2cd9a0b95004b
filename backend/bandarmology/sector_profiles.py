"""
Static sector profiles and macro themes used by the narrative generator.
"""
from dataclasses import dataclass
from typing import List

from .utils import to_billions


@dataclass(frozen=True)
class SectorProfile:
    sector: str
    market_cap: float
    pe: float
    roe: float


SECTOR_PROFILES = {
    'BBCA': SectorProfile('Banking', 850_000_000_000_000, 18.5, 18.2),
    'BBRI': SectorProfile('Banking', 620_000_000_000_000, 16.8, 19.5),
    'TLKM': SectorProfile('Telecom', 280_000_000_000_000, 14.2, 22.1),
    'ASII': SectorProfile('Automotive', 240_000_000_000_000, 12.5, 15.8),
    'INKP': SectorProfile('Paper/Packaging', 45_000_000_000_000, 8.5, 12.3),
    'AMMN': SectorProfile('Mining', 180_000_000_000_000, 22.4, 25.6),
    'ADRO': SectorProfile('Coal/Energy', 120_000_000_000_000, 6.8, 28.4),
    'ANTM': SectorProfile('Mining', 85_000_000_000_000, 15.2, 18.9),
    'BMRI': SectorProfile('Banking', 380_000_000_000_000, 15.8, 17.2),
    'UNVR': SectorProfile('Consumer', 95_000_000_000_000, 24.5, 45.2),
}

DEFAULT_PROFILE = SectorProfile('General', 50_000_000_000_000, 15.0, 15.0)

MACRO_THEMES = {
    'Banking': ('Interest rate cycle favorable. Digital transformation improving efficiency. '
                'Credit growth expected to stay strong.'),
    'Mining': ('Global commodity demand recovery. ESG transition creating winners and losers. '
               'Supply constraints supporting prices.'),
    'Coal/Energy': ('Energy security a policy priority. Transition timeline extended. '
                    'Strong cash generation supports dividends.'),
    'Telecom': ('5G rollout accelerating. Data center and cloud investments paying off. '
                'Digital economy tailwinds.'),
    'Automotive': ('Demand recovery ongoing. EV transition creating opportunities. '
                   'Government incentives supporting sales.'),
    'Consumer': ('Middle class consumption resilient. Premiumization benefiting leaders. '
                 'Distribution scale advantage.'),
    'Paper/Packaging': ('E-commerce growth driving packaging demand. Focus on recyclable materials. '
                        'Regional expansion.'),
}

SECTOR_AVERAGE_PE = 15.0


def get_sector_profile(symbol: str) -> SectorProfile:
    return SECTOR_PROFILES.get(symbol.upper(), DEFAULT_PROFILE)


def macro_thesis(profile: SectorProfile, foreign_net_value: float, change_pct: float) -> str:
    """Sector theme followed by foreign-flow and momentum commentary."""
    parts = [MACRO_THEMES.get(profile.sector, f"{profile.sector} sector showing mixed signals.")]
    net_billions = to_billions(foreign_net_value)
    if net_billions > 1:
        parts.append('Foreign accumulation suggests confidence in sector outlook.')
    elif net_billions < -1:
        parts.append('Foreign exit may present contrarian entry opportunity.')
    if change_pct > 5:
        parts.append('Recent momentum strong - watch for continuation.')
    elif change_pct < -5:
        parts.append('Pullback may offer entry if fundamentals intact.')
    return ' '.join(parts)


def fundamentals_bullets(profile: SectorProfile) -> List[str]:
    bullets = [
        f"Sector: {profile.sector}",
        f"Market Cap: Rp {profile.market_cap / 1e12:.1f}T",
        f"P/E Ratio: {profile.pe}x (Sector avg: ~{SECTOR_AVERAGE_PE:.0f}x)",
        f"ROE: {profile.roe}%",
    ]
    if profile.pe < 12:
        bullets.append('ATTRACTIVE VALUATION: P/E below sector average')
    elif profile.pe > 20:
        bullets.append('PREMIUM VALUATION: High P/E requires strong growth')
    if profile.roe > 20:
        bullets.append('EXCELLENT ROE: Above 20% capital efficiency')
    return bullets
