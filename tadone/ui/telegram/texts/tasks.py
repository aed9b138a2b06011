MENU = "Choose a list."
ADD_PROMPT = "Send the task title (one message).\nOptional: title | description | YYYY-MM-DD"
EDIT_TITLE_PROMPT = "Send the new title."
EDIT_DESCRIPTION_PROMPT = "Send the new description ('-' clears it)."
EDIT_DUE_PROMPT = "Send the due date as YYYY-MM-DD ('-' clears it)."
VOICE_PROMPT = "Send a voice message for this task."
VOICE_EXPECTED = "That is not a voice message. Send a voice note or /cancel."
EMPTY_TITLE = "Empty title is not allowed."
CREATED = "Task added."
UPDATED = "Updated."
SNOOZED = "Snoozed until tomorrow 😴"
PLANNED_NO_SNOOZE = "This task is planned for a later day and cannot be snoozed."
DONE = "Done ✅"
REACTIVATED = "Back on the list."
DELETED = "Deleted 🗑️"
DELETE_CONFIRM = "Delete this task for good?"
AUDIO_SAVED = "Voice note saved 🎙️"
TRANSCRIBING = "Transcribing…"
TRANSCRIPT_ADDED = "Transcript added to the description."
TRANSCRIBE_TIMEOUT = "Transcription took too long. Try again later."
CANCELLED = "Cancelled."
SESSION_LOST = "Editing was interrupted. Open the task again."

VIEW_TITLES = {
    "TODO": "To do",
    "SNOOZE": "Snoozed",
    "DONE": "Done",
    "ARCHIVED": "Archived",
    "INACTIVE": "Inactive",
}

EMPTY_VIEW = {
    "TODO": "Nothing to do right now 🎉",
    "SNOOZE": "Quiet here. No snoozed tasks.",
    "DONE": "Nothing done yet.",
    "ARCHIVED": "Archive is empty.",
    "INACTIVE": "No inactive tasks.",
}
