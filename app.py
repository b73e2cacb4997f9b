"""
Flask Web Application for the Recovery Protocol Core

JSON API over protocol scheduling and conversational forms. No UI, no
authentication; the store decides where data lives.

Configuration (environment):
- RECOVERY_DATA_DIR: JsonFileStore base directory (default "data")
- RECOVERY_SECRET_KEY: Flask secret key
"""

from flask import Flask, jsonify, request
import logging
import os

from recovery.core.assignment_tracker import classify_timeline, next_pending
from recovery.core.form_compiler import compile_form
from recovery.core.form_conversation import FormConversationManager
from recovery.errors import (
    ConflictError,
    InvalidIdentifierError,
    NotFoundError,
    OutOfRangeDayError,
    UnknownStepError,
)
from recovery.persistence import JsonFileStore
from recovery.utils.helpers import utc_now_iso
from recovery.utils.loaders import (
    assignment_view_to_dict,
    form_data_to_dict,
    progress_to_dict,
    task_to_dict,
)

logger = logging.getLogger(__name__)


def _error(message, status):
    return jsonify({
        'success': False,
        'error': message
    }), status


def create_app(store=None):
    """
    Build the Flask app.

    Args:
        store: Object implementing TaskFormStore and CompletionRecordSource,
            plus load_protocol() and record_completion(). Defaults to a
            JsonFileStore over RECOVERY_DATA_DIR.

    Returns:
        Flask application
    """
    app = Flask(__name__)
    app.config['SECRET_KEY'] = os.environ.get('RECOVERY_SECRET_KEY', 'recovery-dev-secret-key')
    app.config['DATA_DIR'] = os.environ.get('RECOVERY_DATA_DIR', 'data')

    if store is None:
        store = JsonFileStore(app.config['DATA_DIR'])
    manager = FormConversationManager(store)

    # ========================
    # Error mapping
    # ========================

    @app.errorhandler(OutOfRangeDayError)
    def handle_out_of_range(e):
        return _error(str(e), 400)

    @app.errorhandler(UnknownStepError)
    def handle_unknown_step(e):
        logger.warning(f"Unknown step: {e}")
        return _error(str(e), 409)

    @app.errorhandler(ConflictError)
    def handle_conflict(e):
        logger.warning(f"Conflict: {e}")
        return _error(str(e), 409)

    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        return _error(str(e), 404)

    @app.errorhandler(InvalidIdentifierError)
    def handle_invalid_identifier(e):
        logger.warning(f"Rejected id: {e}")
        return _error(str(e), 400)

    # ========================
    # Protocols
    # ========================

    @app.route('/api/protocols/<protocol_id>/days')
    def protocol_days(protocol_id):
        """Days that have at least one task, with labels and phases"""
        timeline = store.load_protocol(protocol_id)
        days = [
            {
                'day': day,
                'label': timeline.day_label(day),
                'phase': timeline.day_phase(day),
                'task_count': len(timeline.tasks_for_day(day)),
            }
            for day in timeline.days_with_tasks()
        ]
        return jsonify({
            'success': True,
            'protocol_id': timeline.protocol_id,
            'timeline_start': timeline.timeline_start,
            'timeline_end': timeline.timeline_end,
            'days': days
        })

    @app.route('/api/protocols/<protocol_id>/days/<int(signed=True):day>')
    def protocol_day(protocol_id, day):
        """Tasks due on one protocol day"""
        timeline = store.load_protocol(protocol_id)
        tasks = timeline.tasks_for_day(day)
        return jsonify({
            'success': True,
            'day': day,
            'label': timeline.day_label(day),
            'phase': timeline.day_phase(day),
            'tasks': [task_to_dict(task) for task in tasks]
        })

    @app.route('/api/patients/<patient_id>/protocols/<protocol_id>/assignments')
    def patient_assignments(patient_id, protocol_id):
        """Due today / upcoming / completed for a patient on ?day=N"""
        day = request.args.get('day', type=int)
        if day is None:
            return _error("Query parameter 'day' (integer) is required", 400)

        timeline = store.load_protocol(protocol_id)
        records = store.get_completion_records(patient_id, protocol_id)
        view = classify_timeline(timeline, records, day)
        pending = next_pending(view, day, timeline.timeline_end)

        return jsonify({
            'success': True,
            'patient_id': patient_id,
            'protocol_id': protocol_id,
            'day': day,
            'assignments': assignment_view_to_dict(view),
            'next_task_id': pending.id if pending else None
        })

    # ========================
    # Forms
    # ========================

    @app.route('/api/forms/<form_id>/flow')
    def form_flow(form_id):
        """Compiled conversational flow of a form"""
        form_data = compile_form(store.load_form_definition(form_id))
        return jsonify({
            'success': True,
            'flow': form_data_to_dict(form_data)
        })

    @app.route('/api/forms/<form_id>/open', methods=['POST'])
    def open_form(form_id):
        """Start or resume a form instance"""
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return _error("Request body must be a JSON object", 400)
        patient_id = data.get('patient_id')
        form_instance_id = data.get('form_instance_id')
        if not patient_id or not form_instance_id:
            return _error("patient_id and form_instance_id are required", 400)

        turn_result = manager.open_form(
            patient_id, form_instance_id, form_id, patient_name=data.get('patient_name')
        )
        return jsonify(_turn_payload(turn_result))

    @app.route('/api/forms/<form_id>/turn', methods=['POST'])
    def form_turn(form_id):
        """Submit one patient answer (or skip/back/pause/finish)"""
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return _error("Request body must be a JSON object", 400)
        patient_id = data.get('patient_id')
        form_instance_id = data.get('form_instance_id')
        if not patient_id or not form_instance_id:
            return _error("patient_id and form_instance_id are required", 400)

        protocol_id, task_id = data.get('protocol_id'), data.get('task_id')
        if protocol_id and task_id and store.load_protocol(protocol_id).get_task(task_id) is None:
            return _error(f"Task '{task_id}' not found in protocol {protocol_id}", 404)

        turn_result = manager.handle_turn(
            patient_id=patient_id,
            form_instance_id=form_instance_id,
            form_id=form_id,
            user_input=data.get('answer', ''),
            patient_name=data.get('patient_name'),
        )

        if turn_result.form_complete and protocol_id and task_id:
            store.record_completion(
                patient_id, protocol_id, task_id,
                completed_at=turn_result.progress.completed_at or utc_now_iso()
            )

        return jsonify(_turn_payload(turn_result))

    logger.info(f"Recovery API created (data dir: {app.config['DATA_DIR']})")
    return app


def _turn_payload(turn_result):
    return {
        'success': True,
        'message': turn_result.system_output,
        'finished': turn_result.form_complete,
        'metadata': turn_result.turn_metadata,
        'progress': progress_to_dict(turn_result.progress),
        'debug': turn_result.debug
    }


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    app = create_app()

    print("\n" + "="*60)
    print("RECOVERY PROTOCOL API")
    print("="*60)
    print("\nServer starting on http://localhost:5000")
    print("\nPress Ctrl+C to stop the server")
    print("="*60 + "\n")

    app.run(debug=True, host='0.0.0.0', port=5000)
