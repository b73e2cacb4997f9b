"""
Console Test Harness for FormConversationManager (Functional Core)

Walks one form conversationally in the terminal against an in-memory
store, so the flow can be exercised before wiring up Flask.

Usage:
    python main.py data/forms/daily-check-in.json [patient name]
"""

import json
import logging
import sys

from recovery.core.form_conversation import FormConversationManager
from recovery.persistence import InMemoryStore
from recovery.utils.helpers import generate_form_instance_id
from recovery.utils.loaders import form_from_dict

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

PATIENT_ID = "console-patient"


def print_separator(char="=", length=60):
    """Print a separator line"""
    print(char * length)


def print_debug_info(turn_result):
    """Print debug information from TurnResult"""
    debug = turn_result.debug
    print("-" * 60)
    print(f"Intent: {debug.get('intent', 'N/A')} | accepted: {debug.get('accepted', 'N/A')}")
    if debug.get('parsed_value') is not None:
        print(f"Parsed value: {debug['parsed_value']!r}")
    if debug.get('error'):
        print(f"Error: {debug['error']}")
    if debug.get('conflict_retries'):
        print(f"Conflict retries: {debug['conflict_retries']}")
    print("-" * 60)


def main(argv):
    """Run console test"""
    if len(argv) < 2:
        print(__doc__)
        return 1

    form_path = argv[1]
    patient_name = argv[2] if len(argv) > 2 else None

    print_separator()
    print("FORM CONVERSATION - CONSOLE TEST")
    print_separator()

    try:
        with open(form_path, 'r', encoding='utf-8') as f:
            form = form_from_dict(json.load(f))
    except (OSError, ValueError) as e:
        print(f"\nFailed to load form {form_path}: {e}")
        return 1

    store = InMemoryStore()
    store.add_form(form)
    manager = FormConversationManager(store)
    form_instance_id = generate_form_instance_id()

    print("Type 'skip', 'back', 'pause' or 'done'. Ctrl+C to quit.\n")

    turn_result = manager.open_form(PATIENT_ID, form_instance_id, form.id, patient_name)
    print(f"\nSystem: {turn_result.system_output}\n")

    while not turn_result.form_complete:
        try:
            user_input = input("> ").strip()
            if not user_input:
                print("Please enter a response.\n")
                continue

            turn_result = manager.handle_turn(
                patient_id=PATIENT_ID,
                form_instance_id=form_instance_id,
                form_id=form.id,
                user_input=user_input,
                patient_name=patient_name,
            )

            print_debug_info(turn_result)
            print(f"\nSystem: {turn_result.system_output}\n")

            metadata = turn_result.turn_metadata
            print(f"[{metadata['completion_percentage']}% complete, "
                  f"status {metadata['status']}, version {metadata['version']}]\n")

            if turn_result.debug.get('intent') == 'pause' and turn_result.debug.get('accepted'):
                break

        except KeyboardInterrupt:
            print("\n\nConversation interrupted by user (Ctrl+C)")
            break

    print_separator()
    print("RESPONSES")
    print_separator()
    progress = store.load_patient_form_progress(PATIENT_ID, form_instance_id)
    for question_id, value in progress.responses.items():
        print(f"  {question_id}: {value!r}")
    print(f"\nSaved versions: {len(store.progress_history(PATIENT_ID, form_instance_id))}")
    return 0


if __name__ == '__main__':
    sys.exit(main(sys.argv))
