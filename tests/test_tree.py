"""Tests for the todo tree."""

from datetime import timedelta

import pytest

from paperclip.exceptions import (
    CycleDetectedError,
    InvalidFieldError,
    InvalidParentError,
    NotFoundError,
    TodoNotFoundError,
)
from paperclip.tree import DueDateFilter, TodoTree

from conftest import REFERENCE_NOW


class TestStructure:
    """Create, delete and move keep the tree consistent."""

    def setup_method(self):
        self.tree = TodoTree()
        self.a = self.tree.create(None, "A")
        self.b = self.tree.create(None, "B")
        self.a1 = self.tree.create(self.a, "A1")
        self.a2 = self.tree.create(self.a, "A2")
        self.a1x = self.tree.create(self.a1, "A1x")

    def test_ids_are_sequential(self):
        assert [self.a, self.b, self.a1, self.a2, self.a1x] == [1, 2, 3, 4, 5]

    def test_children_view(self):
        assert list(self.tree.children_of(None)) == [self.a, self.b]
        view = self.tree.children_of(self.a)
        assert list(view) == [self.a1, self.a2]
        assert len(view) == 2
        assert view[0] == self.a1

        # The view follows later changes and can be iterated again
        self.tree.create(self.a, "A3")
        assert len(view) == 3
        assert list(view) == list(view)

    def test_create_with_missing_parent(self):
        with pytest.raises(InvalidParentError):
            self.tree.create(99, "orphan")
        assert len(self.tree) == 5

    def test_flatten_depth_first(self):
        rows = [(todo.description, depth) for todo, depth in self.tree.flatten()]
        assert rows == [("A", 0), ("A1", 1), ("A1x", 2), ("A2", 1), ("B", 0)]

    def test_flatten_skips_collapsed(self):
        self.tree.set_field(self.a1, 'expanded', False)
        rows = [todo.description for todo, _ in self.tree.flatten()]
        assert rows == ["A", "A1", "A2", "B"]

    def test_flatten_from_root(self):
        rows = [(todo.id, depth) for todo, depth in self.tree.flatten(self.a1)]
        assert rows == [(self.a1, 0), (self.a1x, 1)]

    def test_delete_removes_subtree(self):
        removed = self.tree.delete(self.a)
        assert removed == {self.a, self.a1, self.a2, self.a1x}
        assert list(self.tree.children_of(None)) == [self.b]
        assert len(self.tree) == 1

    def test_delete_missing(self):
        with pytest.raises(TodoNotFoundError):
            self.tree.delete(42)

    def test_ids_are_not_reused(self):
        self.tree.delete(self.a1x)
        assert self.tree.create(None, "C") == 6

    def test_move_to_other_parent(self):
        self.tree.move(self.a1, self.b)
        assert list(self.tree.children_of(self.b)) == [self.a1]
        assert self.tree.get(self.a1).parent_id == self.b
        assert self.tree.depth(self.a1x) == 2

    def test_move_to_root_at_position(self):
        self.tree.move(self.a2, None, 0)
        assert list(self.tree.children_of(None)) == [self.a2, self.a, self.b]
        assert self.tree.get(self.a2).parent_id is None

    def test_reorder_within_parent(self):
        self.tree.move(self.a2, self.a, 0)
        assert list(self.tree.children_of(self.a)) == [self.a2, self.a1]

    def test_move_into_own_subtree_is_rejected(self):
        with pytest.raises(CycleDetectedError):
            self.tree.move(self.a, self.a1x)
        with pytest.raises(CycleDetectedError):
            self.tree.move(self.a, self.a)
        assert list(self.tree.children_of(None)) == [self.a, self.b]

    def test_move_to_missing_parent(self):
        with pytest.raises(InvalidParentError):
            self.tree.move(self.a1, 99)
        assert self.tree.position_of(self.a1) == (self.a, 0)

    def test_missing_parent_is_a_not_found_error(self):
        with pytest.raises(NotFoundError):
            self.tree.move(self.a1, 99)
        with pytest.raises(NotFoundError):
            self.tree.create(99, "Orphan")

    def test_set_field_returns_previous(self):
        previous = self.tree.set_field(self.b, 'priority', 9)
        assert previous == 0
        assert self.tree.get(self.b).priority == 5

    def test_set_field_rejects_structure(self):
        with pytest.raises(InvalidFieldError):
            self.tree.set_field(self.b, 'parent_id', self.a)

    def test_toggle_complete_only_touches_one_node(self):
        self.tree.toggle_complete(self.a, REFERENCE_NOW)
        assert self.tree.get(self.a).completed
        assert not self.tree.get(self.a1).completed

    def test_snapshot_restore(self):
        snapshot = self.tree.snapshot_subtree(self.a1)
        self.tree.delete(self.a1)
        self.tree.restore_subtree(snapshot, 0)
        assert list(self.tree.children_of(self.a)) == [self.a1, self.a2]
        assert list(self.tree.children_of(self.a1)) == [self.a1x]


class TestQueries:

    def setup_method(self):
        self.tree = TodoTree()
        self.milk = self.tree.create(None, "Buy milk", tags={"shopping"}, contexts={"store"})
        self.report = self.tree.create(
            None, "Write report", tags={"work"}, due_date=REFERENCE_NOW - timedelta(days=1)
        )
        self.slides = self.tree.create(
            self.report, "Slides", tags={"work"}, due_date=REFERENCE_NOW + timedelta(hours=2)
        )
        self.call = self.tree.create(
            None, "Call bank", due_date=REFERENCE_NOW + timedelta(days=1), notes="ask about fees"
        )
        self.tree.set_field(self.report, 'expanded', False)

    def test_search_includes_collapsed_and_notes(self):
        assert [t.id for t in self.tree.search("slides")] == [self.slides]
        assert [t.id for t in self.tree.search("FEES")] == [self.call]

    def test_tags_and_contexts(self):
        assert [t.id for t in self.tree.with_tag("#work")] == [self.report, self.slides]
        assert [t.id for t in self.tree.with_context("store")] == [self.milk]
        assert self.tree.all_tags() == ["shopping", "work"]
        assert self.tree.tag_counts() == {"shopping": 1, "work": 2}
        assert self.tree.context_counts() == {"store": 1}

    def test_due_filters(self):
        def ids(due_filter):
            return [t.id for t in self.tree.by_due(due_filter, REFERENCE_NOW)]

        assert ids(DueDateFilter.OVERDUE) == [self.report]
        assert ids(DueDateFilter.TODAY) == [self.slides]
        assert ids(DueDateFilter.TOMORROW) == [self.call]
        assert ids(DueDateFilter.THIS_WEEK) == [self.slides, self.call]
        assert ids(DueDateFilter.NO_DUE_DATE) == [self.milk]
        assert self.tree.overdue_count(REFERENCE_NOW) == 1
        assert self.tree.due_today_count(REFERENCE_NOW) == 1

    def test_pending_completed_and_timers(self):
        self.tree.toggle_complete(self.milk, REFERENCE_NOW)
        self.tree.get(self.call).start_timer(REFERENCE_NOW)
        assert [t.id for t in self.tree.completed()] == [self.milk]
        assert len(self.tree.pending()) == 3
        assert [t.id for t in self.tree.active_timers()] == [self.call]


class TestPersistence:

    def test_round_trip_keeps_shape_and_next_id(self):
        tree = TodoTree()
        root = tree.create(None, "Root", tags={"x"})
        child = tree.create(root, "Child")
        tree.create(child, "Grandchild")
        tree.delete(tree.create(None, "Gone"))

        restored = TodoTree.from_dict(tree.to_dict())
        assert restored.todos == tree.todos
        assert restored.roots == tree.roots
        assert restored.next_id == 5

    def test_rejects_dangling_children(self):
        data = {'roots': [1], 'todos': [{'id': 1, 'description': 'x', 'children': [2]}]}
        with pytest.raises(ValueError):
            TodoTree.from_dict(data)

    @pytest.mark.parametrize("data", [
        # 2 lists 1 as its child
        {'roots': [1], 'todos': [
            {'id': 1, 'description': 'a', 'children': [2]},
            {'id': 2, 'description': 'b', 'parent_id': 1, 'children': [1]},
        ]},
        # 2 claims a parent it does not sit under
        {'roots': [1], 'todos': [
            {'id': 1, 'description': 'a', 'children': [2]},
            {'id': 2, 'description': 'b', 'parent_id': 7},
        ]},
        # 2 is in no child list
        {'roots': [1], 'todos': [
            {'id': 1, 'description': 'a'},
            {'id': 2, 'description': 'b'},
        ]},
    ])
    def test_rejects_malformed_structure(self, data):
        with pytest.raises(ValueError):
            TodoTree.from_dict(data)
