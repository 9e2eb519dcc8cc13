"""
Multiple-comparison corrections.

Holm-Bonferroni (family-wise error), Benjamini-Hochberg (false discovery
rate) and plain Bonferroni. Each takes an ordered list of (label, p-value
or StatisticalResult) and returns a CorrectionSet whose members stay in
input order and carry their rank, adjusted threshold and adjusted p-value.

`significant` compares each raw p with its own adjusted threshold. The
classic sequential decision (Holm step-down, BH step-up) is reported
alongside as `significant_sequential`.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..core.numeric import clamp_p
from .statistics import StatisticalResult

TestInput = Tuple[str, Union[float, StatisticalResult]]


@dataclass(frozen=True)
class CorrectedResult:
    """One member of a corrected family."""
    label: str
    raw_p: float
    rank: int                 # 1 = smallest p
    adjusted_alpha: float
    adjusted_p: float
    significant: bool
    result: Optional[StatisticalResult] = None
    # Holm: step-down decision; BH: step-up decision. None for Bonferroni
    significant_sequential: Optional[bool] = None


@dataclass(frozen=True)
class CorrectionSet:
    """A family of tests subjected to one correction."""
    method: str
    alpha: float
    family: str               # 'confirmatory' or 'exploratory'
    members: Tuple[CorrectedResult, ...]

    @property
    def k(self) -> int:
        return len(self.members)

    def significant_labels(self) -> List[str]:
        return [m.label for m in self.members if m.significant]

    def get(self, label: str) -> Optional[CorrectedResult]:
        for member in self.members:
            if member.label == label:
                return member
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['k'] = self.k
        return data


def _unpack(tests: Sequence[TestInput]) -> List[Tuple[str, float, Optional[StatisticalResult]]]:
    rows = []
    for label, value in tests:
        if isinstance(value, StatisticalResult):
            rows.append((label, clamp_p(value.p_value), value))
        else:
            rows.append((label, clamp_p(float(value)), None))
    return rows


def _ranks(p_values: Sequence[float]) -> List[int]:
    """Ascending-p order of indices; ties keep input order."""
    return sorted(range(len(p_values)), key=lambda i: (p_values[i], i))


def holm_bonferroni(
    tests: Sequence[TestInput],
    alpha: float = 0.05,
    family: str = 'confirmatory',
) -> CorrectionSet:
    """
    Holm-Bonferroni sequential step-down correction.

    For rank r of k: adjusted alpha = alpha / (k - r + 1), adjusted p =
    min(1, raw_p * (k - r + 1)) carried forward as a running maximum so it
    never decreases with rank. A test is significant iff raw_p is below its
    adjusted alpha; `significant_sequential` additionally requires every
    lower-ranked test to have been rejected.
    """
    rows = _unpack(tests)
    k = len(rows)
    order = _ranks([r[1] for r in rows])

    members: List[Optional[CorrectedResult]] = [None] * k
    running_max = 0.0
    still_rejecting = True

    for position, i in enumerate(order):
        rank = position + 1
        label, raw_p, result = rows[i]
        multiplier = k - rank + 1
        adjusted_alpha = alpha / multiplier
        running_max = max(running_max, min(1.0, raw_p * multiplier))
        still_rejecting = still_rejecting and raw_p < adjusted_alpha
        members[i] = CorrectedResult(
            label=label,
            raw_p=raw_p,
            rank=rank,
            adjusted_alpha=adjusted_alpha,
            adjusted_p=running_max,
            significant=raw_p < adjusted_alpha,
            result=result,
            significant_sequential=still_rejecting,
        )

    return CorrectionSet(method='holm_bonferroni', alpha=alpha, family=family,
                         members=tuple(members))


def benjamini_hochberg(
    tests: Sequence[TestInput],
    alpha: float = 0.05,
    family: str = 'exploratory',
) -> CorrectionSet:
    """
    Benjamini-Hochberg false discovery rate correction.

    Rank r of k is significant iff raw_p <= (r / k) * alpha. The step-up
    decision (every test up to the largest passing rank) is kept as
    `significant_sequential`. The adjusted p is the minimum of
    raw_p * k / j over ranks j >= r, capped at 1.
    """
    rows = _unpack(tests)
    k = len(rows)
    order = _ranks([r[1] for r in rows])

    largest_passing = 0
    for position, i in enumerate(order):
        rank = position + 1
        if rows[i][1] <= rank / k * alpha:
            largest_passing = rank

    adjusted = [0.0] * k
    running_min = 1.0
    for position in range(k - 1, -1, -1):
        i = order[position]
        rank = position + 1
        running_min = min(running_min, rows[i][1] * k / rank)
        adjusted[position] = min(1.0, running_min)

    members: List[Optional[CorrectedResult]] = [None] * k
    for position, i in enumerate(order):
        rank = position + 1
        label, raw_p, result = rows[i]
        members[i] = CorrectedResult(
            label=label,
            raw_p=raw_p,
            rank=rank,
            adjusted_alpha=rank / k * alpha,
            adjusted_p=adjusted[position],
            significant=raw_p <= rank / k * alpha,
            result=result,
            significant_sequential=rank <= largest_passing,
        )

    return CorrectionSet(method='benjamini_hochberg', alpha=alpha, family=family,
                         members=tuple(members))


def bonferroni_correction(
    tests: Sequence[TestInput],
    alpha: float = 0.05,
    family: str = 'exploratory',
) -> CorrectionSet:
    """
    Apply Bonferroni correction for multiple comparisons.

    Args:
        tests: (label, p-value or result) pairs
        alpha: Desired family-wise error rate

    Returns:
        CorrectionSet with adjusted p = min(1, p * k) and threshold alpha / k
    """
    rows = _unpack(tests)
    n = len(rows)
    if n == 0:
        return CorrectionSet(method='bonferroni', alpha=alpha, family=family, members=())

    adjusted_alpha = alpha / n
    rank_of = {i: position + 1 for position, i in enumerate(_ranks([r[1] for r in rows]))}

    return CorrectionSet(
        method='bonferroni',
        alpha=alpha,
        family=family,
        members=tuple(
            CorrectedResult(
                label=label,
                raw_p=p,
                rank=rank_of[i],
                adjusted_alpha=adjusted_alpha,
                adjusted_p=min(p * n, 1.0),
                significant=p < adjusted_alpha,
                result=result,
            )
            for i, (label, p, result) in enumerate(rows)
        ),
    )
