# src/false_negatives/observations/dataset.py
"""
Typed, immutable container for the sensitivity studies and the household
attack-rate count.

Each row of the input table is one (study, day since symptom onset) cell:
`n` RT-PCR tests were performed and `test_pos` came back positive. The
attack-rate pair is the number of exposed contacts followed up and how many
of them were found to be infected.
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union
import logging
import math

import numpy as np
import pandas as pd

from ..errors import InputValidationError

logger = logging.getLogger(__name__)

# household contact cohort (Bi et al.)
DEFAULT_EXPOSED_N = 686
DEFAULT_EXPOSED_POS = 77

REQUIRED_COLUMNS = ("study", "day", "n", "test_pos")


@dataclass(frozen=True)
class ObservationRecord:
    study: str
    study_idx: int
    day: int
    n_tested: int
    n_positive: int

    @property
    def pct_pos(self) -> float:
        if self.n_tested == 0:
            return float("nan")
        return self.n_positive / self.n_tested

    def as_dict(self) -> Dict[str, object]:
        return {
            "study": self.study,
            "study_idx": self.study_idx,
            "day": self.day,
            "n": self.n_tested,
            "test_pos": self.n_positive,
        }


@dataclass(frozen=True)
class AttackRateObservation:
    exposed_n: int = DEFAULT_EXPOSED_N
    exposed_pos: int = DEFAULT_EXPOSED_POS

    def __post_init__(self):
        if self.exposed_n <= 0:
            raise InputValidationError("exposed_n must be > 0", self._as_record())
        if self.exposed_pos < 0 or self.exposed_pos > self.exposed_n:
            raise InputValidationError(
                "exposed_pos must lie in [0, exposed_n]", self._as_record()
            )

    def _as_record(self):
        return {"exposed_n": self.exposed_n, "exposed_pos": self.exposed_pos}

    @property
    def raw_rate(self) -> float:
        return self.exposed_pos / self.exposed_n

    def scaled(self, factor: float) -> "AttackRateObservation":
        """Scale the positive count, keeping the number exposed fixed.

        Halves are rounded up, so 77 * 0.5 -> 39.
        """
        if factor < 0:
            raise InputValidationError("attack-rate scale factor must be >= 0", {"factor": factor})
        pos = int(math.floor(self.exposed_pos * factor + 0.5))
        return AttackRateObservation(exposed_n=self.exposed_n, exposed_pos=pos)


@dataclass(frozen=True)
class ObservationDataset:
    """All sensitivity records plus one attack-rate observation.

    Records are kept in a tuple and every array view is a fresh read-only
    copy, so a dataset can be shared between scenarios and chains.
    """

    records: Tuple[ObservationRecord, ...]
    attack: AttackRateObservation = field(default_factory=AttackRateObservation)

    def __post_init__(self):
        # accept any sequence, store a tuple
        object.__setattr__(self, "records", tuple(self.records))
        check_records(self.records)

    # ---------- shape ----------

    @property
    def n_records(self) -> int:
        return len(self.records)

    @property
    def n_studies(self) -> int:
        return len({r.study_idx for r in self.records})

    @property
    def studies(self) -> List[str]:
        """Study names ordered by their 1-based index."""
        names = {r.study_idx: r.study for r in self.records}
        return [names[i] for i in sorted(names)]

    @property
    def max_day(self) -> int:
        return max(r.day for r in self.records)

    # ---------- array views ----------

    def _column(self, name: str) -> np.ndarray:
        arr = np.array([getattr(r, name) for r in self.records], dtype=int)
        arr.setflags(write=False)
        return arr

    @property
    def day(self) -> np.ndarray:
        return self._column("day")

    @property
    def n_tested(self) -> np.ndarray:
        return self._column("n_tested")

    @property
    def n_positive(self) -> np.ndarray:
        return self._column("n_positive")

    @property
    def study_idx(self) -> np.ndarray:
        return self._column("study_idx")

    # ---------- derived datasets ----------

    def with_attack(self, attack: AttackRateObservation) -> "ObservationDataset":
        return replace(self, attack=attack)

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame([r.as_dict() for r in self.records])
        df["pct_pos"] = [r.pct_pos for r in self.records]
        return df

    def validate(self, t_max: int) -> None:
        """Check every record sits inside the modelled horizon [0, t_max]."""
        if t_max < 0:
            raise InputValidationError("T_max must be >= 0", {"t_max": t_max})
        if self.max_day <= t_max:
            return
        for pos, rec in enumerate(self.records):
            if rec.day > t_max:
                raise InputValidationError(
                    f"day {rec.day} is outside [0, {t_max}]",
                    {"row": pos, **rec.as_dict()},
                )


def check_records(records: Sequence[ObservationRecord]) -> None:
    """Raise InputValidationError for the first record that breaks an invariant."""
    if not records:
        raise InputValidationError("dataset contains no observation records")

    for pos, rec in enumerate(records):
        where = {"row": pos, **rec.as_dict()}
        if rec.n_tested < 0:
            raise InputValidationError("n must be non-negative", where)
        if rec.n_positive < 0 or rec.n_positive > rec.n_tested:
            raise InputValidationError("test_pos must lie in [0, n]", where)
        if rec.day < 0:
            raise InputValidationError("day must be >= 0", where)

    # study ids must be 1..J with no gaps, one name per id
    seen: Dict[int, str] = {}
    for pos, rec in enumerate(records):
        prev = seen.setdefault(rec.study_idx, rec.study)
        if prev != rec.study:
            raise InputValidationError(
                f"study_idx {rec.study_idx} maps to both '{prev}' and '{rec.study}'",
                {"row": pos, **rec.as_dict()},
            )
    expected = set(range(1, len(seen) + 1))
    if set(seen) != expected:
        missing = sorted(expected - set(seen))
        extra = sorted(set(seen) - expected)
        raise InputValidationError(
            f"study indices must be dense 1..{len(seen)} (missing {missing}, unexpected {extra})"
        )


def _as_int(value, column: str, pos: int, row: Dict[str, object]) -> int:
    try:
        fval = float(value)
    except (TypeError, ValueError):
        raise InputValidationError(f"column '{column}' is not numeric", {"row": pos, **row})
    if not np.isfinite(fval) or fval != int(fval):
        raise InputValidationError(f"column '{column}' must be an integer", {"row": pos, **row})
    return int(fval)


def from_frame(
    df: pd.DataFrame,
    attack: Optional[AttackRateObservation] = None,
    t_max: Optional[int] = None,
) -> ObservationDataset:
    """Build a dataset from a table with columns study, day, n, test_pos.

    Study indices are assigned 1..J following the sorted study names.
    """
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise InputValidationError(f"input table is missing columns: {missing}")

    study_names = sorted(df["study"].astype(str).unique())
    index_of = {name: i + 1 for i, name in enumerate(study_names)}

    records = []
    for pos, row in enumerate(df[list(REQUIRED_COLUMNS)].to_dict(orient="records")):
        if pd.isna(row["study"]) or str(row["study"]).strip() == "":
            raise InputValidationError("study name is empty", {"row": pos, **row})
        study = str(row["study"])
        records.append(
            ObservationRecord(
                study=study,
                study_idx=index_of[study],
                day=_as_int(row["day"], "day", pos, row),
                n_tested=_as_int(row["n"], "n", pos, row),
                n_positive=_as_int(row["test_pos"], "test_pos", pos, row),
            )
        )

    dataset = ObservationDataset(records=tuple(records), attack=attack or AttackRateObservation())
    if t_max is not None:
        dataset.validate(t_max)
    logger.debug("Loaded %d records from %d studies", dataset.n_records, dataset.n_studies)
    return dataset


def load_observations(
    path: Union[str, Path],
    exposed_n: int = DEFAULT_EXPOSED_N,
    exposed_pos: int = DEFAULT_EXPOSED_POS,
    t_max: Optional[int] = None,
) -> ObservationDataset:
    """Read the sensitivity table from CSV and attach the attack-rate count."""
    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Observation CSV not found: {csv_path}")
    df = pd.read_csv(csv_path)
    dataset = from_frame(df, AttackRateObservation(exposed_n, exposed_pos), t_max=t_max)
    logger.info("Read %d observation records from %s", dataset.n_records, csv_path)
    return dataset


def records_from_rows(rows: Iterable[Tuple[str, int, int, int]]) -> List[ObservationRecord]:
    """Helper for building records in code: (study, day, n, test_pos) tuples."""
    rows = list(rows)
    index_of = {name: i + 1 for i, name in enumerate(sorted({r[0] for r in rows}))}
    return [
        ObservationRecord(study=s, study_idx=index_of[s], day=d, n_tested=n, n_positive=k)
        for s, d, n, k in rows
    ]
