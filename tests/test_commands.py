"""Tests for undoable commands and the command history."""

import copy
from datetime import timedelta

import pytest

from paperclip.commands import (
    AddTodo,
    ApplyTemplate,
    CommandHistory,
    DeleteTodo,
    EditDescription,
    MoveTodo,
    SetDueDate,
    SetNote,
    SetPriority,
    SetRecurrence,
    SetTags,
    ToggleComplete,
    ToggleExpanded,
    ToggleTimer,
)
from paperclip.exceptions import (
    CycleDetectedError,
    NothingToRedoError,
    NothingToUndoError,
    TodoNotFoundError,
)
from paperclip.recurring import RecurrencePattern, RecurrenceType
from paperclip.template import TodoTemplate
from paperclip.todo import TodoStatus
from paperclip.tree import TodoTree

from conftest import REFERENCE_NOW


def state(tree):
    """Comparable view of a tree, leaving out the id counter."""
    return copy.deepcopy(tree.todos), list(tree.roots)


class TestUndoRedo:
    """Every command inverts exactly and replays identically."""

    def setup_method(self):
        self.tree = TodoTree()
        self.history = CommandHistory()
        self.parent = self.history.execute(AddTodo("Parent"), self.tree).todo_id
        self.child = self.history.execute(AddTodo("Child", self.parent), self.tree).todo_id
        self.other = self.history.execute(AddTodo("Other"), self.tree).todo_id
        self.history.clear()

    def check_round_trip(self, command):
        before = state(self.tree)
        self.history.execute(command, self.tree)
        after = state(self.tree)
        assert after != before

        self.history.undo(self.tree)
        assert state(self.tree) == before

        self.history.redo(self.tree)
        assert state(self.tree) == after

    def test_add(self):
        self.check_round_trip(AddTodo("New", self.parent, position=0))
        assert list(self.tree.children_of(self.parent))[0] == 4

    def test_add_redo_reuses_id(self):
        command = self.history.execute(AddTodo("New"), self.tree)
        self.history.undo(self.tree)
        self.history.redo(self.tree)
        assert command.todo_id in self.tree
        assert self.tree.next_id == command.todo_id + 1

    def test_delete_subtree(self):
        self.check_round_trip(DeleteTodo(self.parent))
        assert self.parent not in self.tree

    def test_delete_restores_position(self):
        self.history.execute(DeleteTodo(self.parent), self.tree)
        self.history.undo(self.tree)
        assert list(self.tree.children_of(None)) == [self.parent, self.other]
        assert list(self.tree.children_of(self.parent)) == [self.child]

    def test_toggle_complete(self):
        self.check_round_trip(ToggleComplete(self.child, REFERENCE_NOW))
        assert self.tree.get(self.child).completed_at == REFERENCE_NOW

    def test_edit_description(self):
        self.check_round_trip(EditDescription(self.child, "Renamed", extra={'tags': {"x"}}))

    def test_move(self):
        self.check_round_trip(MoveTodo(self.child, self.other))

    def test_reorder(self):
        self.check_round_trip(MoveTodo(self.other, None, 0))
        assert list(self.tree.children_of(None)) == [self.other, self.parent]

    def test_field_commands(self):
        self.check_round_trip(SetPriority(self.child, 4))
        self.check_round_trip(SetTags(self.child, {"Home"}, {"phone"}))
        assert self.tree.get(self.child).tags == {"home"}
        self.check_round_trip(SetNote(self.child, "remember"))
        self.check_round_trip(SetRecurrence(self.child, RecurrencePattern(RecurrenceType.DAILY)))
        self.check_round_trip(SetDueDate(self.child, REFERENCE_NOW))

    def test_timer(self):
        self.check_round_trip(ToggleTimer(self.child, REFERENCE_NOW))
        assert self.tree.get(self.child).status == TodoStatus.IN_PROGRESS

        self.check_round_trip(ToggleTimer(self.child, REFERENCE_NOW + timedelta(minutes=20)))
        todo = self.tree.get(self.child)
        assert todo.time_spent == timedelta(minutes=20)
        assert not todo.is_timer_running()

    def test_toggle_expanded(self):
        self.check_round_trip(ToggleExpanded(self.parent))
        assert self.tree.get(self.parent).expanded is False

    def test_apply_template(self):
        template = TodoTemplate(id="t1", name="Errand", tags={"errand"}, priority=3, notes="bring bags")
        self.check_round_trip(ApplyTemplate(self.child, template))
        todo = self.tree.get(self.child)
        assert todo.tags == {"errand"}
        assert todo.priority == 3
        assert todo.template_id == "t1"


class TestFailedCommands:
    """A command that raises changes nothing and is not recorded."""

    def setup_method(self):
        self.tree = TodoTree()
        self.history = CommandHistory()
        self.a = self.history.execute(AddTodo("A"), self.tree).todo_id
        self.b = self.history.execute(AddTodo("B", self.a), self.tree).todo_id

    def test_cycle(self):
        before = state(self.tree)
        with pytest.raises(CycleDetectedError):
            self.history.execute(MoveTodo(self.a, self.b), self.tree)
        assert state(self.tree) == before
        assert len(self.history) == 2

    def test_missing_todo(self):
        before = state(self.tree)
        for command in [DeleteTodo(9), SetPriority(9, 1), ToggleComplete(9, REFERENCE_NOW), ToggleTimer(9, REFERENCE_NOW)]:
            with pytest.raises(TodoNotFoundError):
                self.history.execute(command, self.tree)
        assert state(self.tree) == before
        assert len(self.history) == 2

    def test_successor_out_of_range(self):
        last_year = self.history.execute(AddTodo("Renew", metadata={
            'due_date': REFERENCE_NOW.replace(year=9999, month=12, day=25),
            'recurrence': RecurrencePattern(RecurrenceType.YEARLY),
        }), self.tree).todo_id
        before = state(self.tree)

        with pytest.raises(ValueError):
            self.history.execute(ToggleComplete(last_year, REFERENCE_NOW), self.tree)
        assert state(self.tree) == before
        assert self.tree.get(last_year).status == TodoStatus.PENDING
        assert len(self.history) == 3

        self.history.execute(ToggleComplete(last_year, REFERENCE_NOW, spawn_recurring=False), self.tree)
        assert self.tree.get(last_year).completed


class TestRecurringSuccessor:

    def setup_method(self):
        self.tree = TodoTree()
        self.history = CommandHistory()
        self.first = self.history.execute(AddTodo("First"), self.tree).todo_id
        self.recurring = self.history.execute(AddTodo("Water plants", metadata={
            'due_date': REFERENCE_NOW,
            'recurrence': RecurrencePattern(RecurrenceType.WEEKLY),
            'tags': {"home"},
            'priority': 2,
        }), self.tree).todo_id
        self.last = self.history.execute(AddTodo("Last"), self.tree).todo_id

    def test_completing_spawns_next_sibling(self):
        command = self.history.execute(ToggleComplete(self.recurring, REFERENCE_NOW), self.tree)

        successor = self.tree.get(command.successor_id)
        assert list(self.tree.children_of(None)) == [self.first, self.recurring, successor.id, self.last]
        assert successor.due_date == REFERENCE_NOW + timedelta(weeks=1)
        assert successor.tags == {"home"}
        assert successor.priority == 2
        assert not successor.completed

    def test_undo_removes_successor_and_redo_restores_it(self):
        before = state(self.tree)
        command = self.history.execute(ToggleComplete(self.recurring, REFERENCE_NOW), self.tree)
        after = state(self.tree)

        self.history.undo(self.tree)
        assert state(self.tree) == before
        assert command.successor_id not in self.tree

        self.history.redo(self.tree)
        assert state(self.tree) == after

    def test_reopening_does_not_spawn(self):
        self.history.execute(ToggleComplete(self.recurring, REFERENCE_NOW, spawn_recurring=False), self.tree)
        assert len(self.tree) == 3
        command = self.history.execute(ToggleComplete(self.recurring, REFERENCE_NOW), self.tree)
        assert command.successor_id is None
        assert len(self.tree) == 3


class TestCommandHistory:

    def setup_method(self):
        self.tree = TodoTree()

    def test_empty_history(self):
        history = CommandHistory()
        assert not history.can_undo
        assert not history.can_redo
        with pytest.raises(NothingToUndoError):
            history.undo(self.tree)
        with pytest.raises(NothingToRedoError):
            history.redo(self.tree)

    def test_new_command_discards_redo(self):
        history = CommandHistory()
        history.execute(AddTodo("A"), self.tree)
        history.execute(AddTodo("B"), self.tree)
        history.undo(self.tree)
        assert history.can_redo

        history.execute(AddTodo("C"), self.tree)
        assert not history.can_redo
        assert [t.description for t, _ in self.tree.flatten()] == ["A", "C"]

    def test_capacity_drops_oldest(self):
        history = CommandHistory(capacity=50)
        for i in range(60):
            history.execute(AddTodo(f"Todo {i}"), self.tree)

        assert len(history) == 50
        for _ in range(50):
            history.undo(self.tree)
        with pytest.raises(NothingToUndoError):
            history.undo(self.tree)

        # The ten oldest commands can no longer be undone
        assert [t.description for t, _ in self.tree.flatten()] == [f"Todo {i}" for i in range(10)]

    def test_describe(self):
        history = CommandHistory()
        command = history.execute(AddTodo("Buy milk"), self.tree)
        assert command.describe() == "Add 'Buy milk'"
        assert history.undo(self.tree) is command
