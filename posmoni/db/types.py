from dataclasses import dataclass

from posmoni.types import Gwei, ValidatorIndex


@dataclass
class ValidatorRecord:
    idx: ValidatorIndex
    balance: Gwei
    # Consecutive balance decreases, reset by the first non-decrease
    missed_atts: int = 0
    missed_atts_total: int = 0
