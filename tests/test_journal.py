import pytest

from sharelock.ledger.core.journal import ChangeJournal, balance_key, lock_key


class Holder:
    def __init__(self):
        self.count = 0


def test_inactive_journal_records_nothing():
    journal = ChangeJournal()
    balances = {}
    journal.set_item(balances, "a", 5, balance_key("DEP", "a"))

    assert balances == {"a": 5}
    assert journal.dirty == set()
    journal.rollback()
    assert balances == {"a": 5}


def test_rollback_undoes_in_reverse():
    journal = ChangeJournal()
    balances = {"a": 1}
    items = ["x"]
    holder = Holder()

    journal.begin()
    journal.set_item(balances, "a", 2)
    journal.set_item(balances, "b", 3)
    journal.set_item(balances, "a", 4)
    journal.delete_item(balances, "b")
    journal.append(items, "y", lock_key(1))
    journal.set_index(items, 0, "z", lock_key(0))
    journal.set_attr(holder, "count", 7)
    journal.rollback()

    assert balances == {"a": 1}
    assert items == ["x"]
    assert holder.count == 0
    assert not journal.active


def test_commit_returns_touched_keys():
    journal = ChangeJournal()
    items = []

    journal.begin()
    journal.append(items, "lock", lock_key(0))
    journal.set_index(items, 0, "cleared", lock_key(0))
    journal.delete_item({}, "missing", "ignored")
    dirty = journal.commit()

    assert dirty == {"lock:000000000000"}
    assert items == ["cleared"]
    # committed changes are no longer undoable
    journal.rollback()
    assert items == ["cleared"]


def test_begin_twice_rejected():
    journal = ChangeJournal()
    journal.begin()
    with pytest.raises(RuntimeError):
        journal.begin()
