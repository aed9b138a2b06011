from aiogram.fsm.state import StatesGroup, State


class TasksFlow(StatesGroup):
    # /add without arguments
    add_title = State()

    # editing a selected task (task_id kept in FSM data)
    edit_title = State()
    edit_description = State()
    edit_due_date = State()

    # waiting for a voice message for the selected task
    attach_voice = State()
