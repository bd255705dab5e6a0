import os
import tempfile
from pathlib import Path

import pytest

# Point storage, logs and the run-history DB at a throwaway directory before the package is imported
_TMP_ROOT = Path(tempfile.mkdtemp(prefix="pattern_inspector_tests_"))
os.environ.setdefault("INSPECTOR_DATA_DIR", str(_TMP_ROOT / "data"))
os.environ.setdefault("INSPECTOR_LOG_DIR", str(_TMP_ROOT / "logs"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP_ROOT / 'test.db'}")


DATASET_CSV = (
    "fips,county,state,income,region,poverty\n"
    "1001,Autauga,Alabama,10,south,12.5\n"
    "1003,Baldwin,Alabama,60,south,9.0\n"
    "4001,Apache,Arizona,90,west,30.1\n"
    "4003,Cochise,Arizona,45,,17.2\n"
)

PATTERNS_CSV = (
    "keys,description,target,count,mean,std,min,max\n"
    "income,\"{'ID': 1, 'constraints': {'income': {'lb': -inf, 'ub': 50}}}\",poverty,2,14.85,3.3,12.5,17.2\n"
    "income;region,\"{'ID': 2, 'constraints': {'income': {'lb': 40, 'ub': inf}, 'region': {'in': ['south', 'west']}}}\",poverty,2,19.55,14.9,9.0,30.1\n"
    "region,\"{'ID': 3, 'constraints': {'region': {'in': ['north']}}}\",poverty,0,,,,\n"
)


def make_rows():
    return [
        {"fips": 1, "county": "A", "state": "S1", "income": 10, "target": 1.5},
        {"fips": 2, "county": "B", "state": "S1", "income": 60, "target": 2.5},
        {"fips": 3, "county": "C", "state": "S2", "income": 90, "target": 4.0},
    ]


@pytest.fixture
def rows():
    return make_rows()


@pytest.fixture
def dataset_bytes():
    return DATASET_CSV.encode("utf-8")


@pytest.fixture
def patterns_bytes():
    return PATTERNS_CSV.encode("utf-8")
