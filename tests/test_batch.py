"""Tests for parallel batch parsing."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from netlens.ingest import batch
from netlens.ingest.arbitrator import Arbitrator
from netlens.ingest.batch import FileOutcome, default_workers, parse_batch
from netlens.models.record import Vendor


SAMPLE_CISCO = """hostname BranchRouter
!
interface GigabitEthernet0/0
 ip address 10.1.1.1 255.255.255.0
!
"""

SAMPLE_HUAWEI = """sysname AR-Branch
#
interface GigabitEthernet0/0/1
 ip address 10.2.2.1 255.255.255.0
#
"""


@pytest.fixture
def files(tmp_path):
    cisco = tmp_path / "branch.cfg"
    cisco.write_text(SAMPLE_CISCO)
    huawei = tmp_path / "ar.cfg"
    huawei.write_text(SAMPLE_HUAWEI)
    return [cisco, tmp_path / "absent.cfg", huawei]


@pytest.fixture
def pool_sizes(monkeypatch):
    sizes = []

    class RecordingPool(ThreadPoolExecutor):
        def __init__(self, max_workers=None, **kwargs):
            sizes.append(max_workers)
            super().__init__(max_workers=max_workers, **kwargs)

    monkeypatch.setattr(batch, "ThreadPoolExecutor", RecordingPool)
    return sizes


class TestParseBatch:
    def test_order_and_isolation(self, files):
        outcomes = parse_batch(files, max_workers=2)
        assert [o.path for o in outcomes] == files
        assert outcomes[0].ok
        assert outcomes[0].record.device == "BranchRouter"
        assert not outcomes[1].ok
        assert "absent.cfg" in outcomes[1].error
        assert outcomes[2].ok
        assert outcomes[2].record.device == "AR-Branch"

    def test_single_worker(self, files):
        outcomes = parse_batch(files, arbitrator=Arbitrator(), max_workers=1)
        assert [o.ok for o in outcomes] == [True, False, True]

    def test_explicit_vendor(self, files):
        outcomes = parse_batch([files[0]], vendor=Vendor.GENERIC)
        assert outcomes[0].record.vendor == Vendor.GENERIC

    def test_cancelled(self, files):
        cancel = threading.Event()
        cancel.set()
        outcomes = parse_batch(files, cancel=cancel)
        assert all(o.cancelled for o in outcomes)
        assert not any(o.ok for o in outcomes)

    def test_empty(self):
        assert parse_batch([]) == []

    def test_default_workers(self):
        assert 1 <= default_workers() <= 4
        assert default_workers(cap=1) == 1

    def test_outcome_ok(self, tmp_path):
        assert not FileOutcome(tmp_path / "x", error="boom").ok

    def test_pool_bounded_by_cpu_count(self, files, pool_sizes, monkeypatch):
        monkeypatch.setattr(batch.os, "cpu_count", lambda: 1)
        outcomes = parse_batch(files, max_workers=4)
        assert pool_sizes == [1]
        assert [o.ok for o in outcomes] == [True, False, True]

    def test_pool_bounded_by_file_count(self, files, pool_sizes, monkeypatch):
        monkeypatch.setattr(batch.os, "cpu_count", lambda: 16)
        parse_batch(files[:2], max_workers=8)
        assert pool_sizes == [2]
