import pytest

from shardprint.errors import NotPresentError
from shardprint.gather.reconciler import GlobalIndexReconciler, OrderedPosition, order_positions
from shardprint.store.memory_store import MemoryValueStore
from shardprint.transport.distributed import InProcessGroup, LocalCollective


def reconcile_across(index_maps, **kwargs):
    stores = []
    for index in index_maps:
        store = MemoryValueStore(index)
        store.add_column("QC/flag", [i % 2 for i in index], kind="int")
        stores.append(store)
    group = InProcessGroup(len(stores))
    return group.run(
        lambda ch: GlobalIndexReconciler(stores[ch.rank], ch).reconcile(**kwargs)
    )


def test_order_positions_with_gaps():
    # Locations 0 and 5 dropped; gathered from two ranks as [2, 4] + [1, 3].
    positions = order_positions([2, 4, 1, 3])
    assert [p.location for p in positions] == [1, 2, 3, 4]
    assert [p.index for p in positions] == [2, 0, 3, 1]


def test_duplicates_keep_gather_order():
    positions = order_positions([3, 1, 3, 1])
    assert positions == (
        OrderedPosition(1, 1),
        OrderedPosition(1, 3),
        OrderedPosition(3, 0),
        OrderedPosition(3, 2),
    )


def test_two_ranks_same_result_everywhere():
    results = reconcile_across([[2, 4], [1, 3]])
    for rec in results:
        assert [p.location for p in rec.positions] == [1, 2, 3, 4]
        assert [p.index for p in rec.positions] == [2, 0, 3, 1]
        assert rec.total == 4
        assert rec.apply.tolist() == [True] * 4


def test_location_set_is_partition_invariant():
    one = reconcile_across([[6, 1, 3, 2, 9]])[0]
    three = reconcile_across([[6, 2], [1], [3, 9]])[0]
    assert [p.location for p in one.positions] == [p.location for p in three.positions]


def test_print_rank0_masks_other_ranks():
    results = reconcile_across([[2, 4], [1, 3]], print_rank0=True)
    for rec in results:
        assert rec.apply.tolist() == [True, True, False, False]
        # Ordering still covers every rank.
        assert len(rec.positions) == 4


def test_where_is_gathered():
    store = MemoryValueStore([0, 1, 2])
    store.add_column("QC/flag", [0, 1, 0])
    rec = GlobalIndexReconciler(store, LocalCollective()).reconcile(
        where=[{"variable": "QC/flag", "is_in": [0]}]
    )
    assert rec.apply.tolist() == [True, False, True]


def where_across(columns, where):
    stores = []
    for index, flags in columns:
        store = MemoryValueStore(index)
        if flags is not None:
            store.add_column("QC/flag", flags, kind="int")
        stores.append(store)
    group = InProcessGroup(len(stores))
    return group.run(
        lambda ch: GlobalIndexReconciler(stores[ch.rank], ch).reconcile(where=where)
    )


def test_where_variable_missing_on_one_rank():
    where = [{"variable": "QC/flag", "is_in": [0]}]
    results = where_across([([2, 4], [0, 1]), ([1, 3], None)], where)
    for rec in results:
        assert rec.apply.tolist() == [True, False, False, False]
        assert rec.notices == (
            "where clause: QC/flag not present in store on rank(s) [1]; "
            "locations not selected",
        )


def failures_across(columns, where):
    stores = []
    for index, flags in columns:
        store = MemoryValueStore(index)
        if flags is not None:
            store.add_column("QC/flag", flags, kind="int")
        stores.append(store)

    def work(ch):
        try:
            GlobalIndexReconciler(stores[ch.rank], ch).reconcile(where=where)
        except (NotPresentError, ValueError) as e:
            return type(e), str(e)
        return None

    return InProcessGroup(len(stores)).run(work)


def test_where_variable_missing_everywhere_raises_on_all_ranks():
    where = [{"variable": "QC/missing", "is_in": [0]}]
    results = failures_across([([0], None), ([1], None)], where)
    assert results == [(NotPresentError, "QC/missing not present in store")] * 2


def test_where_type_error_on_one_rank_raises_everywhere():
    # Rank 1 holds no locations, so only rank 0 trips over the comparison.
    where = [{"variable": "QC/flag", "minvalue": "high"}]
    results = failures_across([([0, 1], [0, 1]), ([], [])], where)
    assert results[0] == results[1]
    kind, message = results[0]
    assert kind is ValueError
    assert message.startswith("where clause could not be evaluated on rank 0")
