import io

import pytest
import torch.distributed as dist

from shardprint.errors import CollectiveMismatchError
from shardprint.printer import FilterDataPrinter
from shardprint.runtime.settings import PrintSettings, VariablePrintSettings
from shardprint.store.memory_store import MemoryValueStore
from shardprint.transport.distributed import (
    InProcessGroup,
    LocalCollective,
    TorchCollective,
    default_channel,
    get_ddp_info,
)


def test_local_collective_gathers_own_values():
    channel = LocalCollective()
    assert channel.rank == 0
    assert channel.world_size == 1
    assert channel.gather_all([3, 1, 2]) == [3, 1, 2]


def test_default_channel_without_process_group():
    assert isinstance(default_channel(), LocalCollective)


def test_get_ddp_info_from_env(monkeypatch):
    monkeypatch.setenv("WORLD_SIZE", "4")
    monkeypatch.setenv("RANK", "2")
    assert get_ddp_info() == (True, 2, 4)


class TestInProcessGroup:

    def test_gather_all_concatenates_in_rank_order(self):
        group = InProcessGroup(3)
        local = {0: [10], 1: [], 2: [20, 21]}
        results = group.run(lambda ch: ch.gather_all(local[ch.rank]))
        assert results == [[10, 20, 21]] * 3

    def test_gather_per_rank(self):
        group = InProcessGroup(2)
        results = group.run(lambda ch: ch.gather_per_rank(("rank", ch.rank)))
        assert results[0] == results[1] == [("rank", 0), ("rank", 1)]

    def test_repeated_gathers_stay_in_step(self):
        group = InProcessGroup(2)

        def work(ch):
            return [ch.gather_all([ch.rank * 10 + i]) for i in range(5)]

        results = group.run(work)
        assert results[0] == results[1]
        assert results[0][4] == [4, 14]

    def test_mismatched_gather_counts_raise(self):
        group = InProcessGroup(2, timeout=5.0)

        def work(ch):
            calls = 2 if ch.rank == 0 else 1
            for _ in range(calls):
                ch.gather_all([ch.rank])

        with pytest.raises(CollectiveMismatchError):
            group.run(work)

    def test_rank_error_is_reraised(self):
        group = InProcessGroup(2, timeout=5.0)

        def work(ch):
            if ch.rank == 1:
                raise KeyError("boom")
            ch.gather_all([0])

        with pytest.raises(KeyError):
            group.run(work)

    def test_group_is_reusable(self):
        group = InProcessGroup(2)
        assert group.run(lambda ch: ch.gather_all([ch.rank])) == [[0, 1], [0, 1]]
        assert group.run(lambda ch: ch.gather_all([ch.rank])) == [[0, 1], [0, 1]]


def test_default_channel_env_without_initialised_group(monkeypatch):
    monkeypatch.setenv("WORLD_SIZE", "4")
    monkeypatch.setenv("RANK", "2")
    assert isinstance(default_channel(), LocalCollective)


def test_torch_collective_requires_process_group():
    with pytest.raises(RuntimeError):
        TorchCollective()


@pytest.fixture
def gloo_group(tmp_path):
    if not dist.is_available() or not dist.is_gloo_available():
        pytest.skip("gloo backend not available")
    dist.init_process_group(
        "gloo",
        init_method=f"file://{tmp_path}/store",
        rank=0,
        world_size=1,
    )
    try:
        yield
    finally:
        dist.destroy_process_group()


class TestTorchCollective:
    def test_gathers_over_gloo(self, gloo_group):
        channel = TorchCollective()
        assert channel.rank == 0
        assert channel.world_size == 1
        assert channel.gather_per_rank(("rank", 0)) == [("rank", 0)]
        assert channel.gather_all(["a", 2.5, None]) == ["a", 2.5, None]

    def test_default_channel_single_rank_group_is_local(self, gloo_group):
        assert isinstance(default_channel(), LocalCollective)

    def test_printer_over_gloo(self, gloo_group):
        store = MemoryValueStore([3, 1])
        store.add_column("QC/flag", [7, 5], kind="int")
        settings = PrintSettings(variables=(VariablePrintSettings("QC/flag"),), column_width=4)
        text = FilterDataPrinter(store, TorchCollective(), settings, stream=io.StringIO()).render()
        assert "Location |    1 |    3 | " in text
        assert " QC/flag |    5 |    7 | " in text
