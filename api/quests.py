# FILE: api/quests.py

import logging
from flask import Blueprint, current_app, request, jsonify

from dependencies import get_quest_service
from extensions import limiter
from quest_generator import QuestGenerationError, prioritize_quests
from quest_lifecycle import QuestActionError
from .error_utils import create_error_response, handle_exception, quest_error_response, validation_error
from .pydantic_models import GenerateQuestsRequest, QuestActionRequest

quests_bp = Blueprint('quests_bp', __name__)


def _service():
    """The QuestService injected by create_app(), or the production one."""
    return current_app.extensions.get('quest_service') or get_quest_service()


@quests_bp.route('/generate', methods=['POST'])
@limiter.limit("30 per hour")
def generate_quests():
    """Runs one generation cycle and returns the newly created quests, most urgent first."""
    req_data = GenerateQuestsRequest.model_validate(request.get_json(silent=True) or {})
    try:
        quests = _service().engine.generate_quests(req_data.userId, req_data.location)
    except QuestGenerationError as e:
        return create_error_response("QUEST_GENERATION_FAILED", str(e), status_code=500, extra={"quests": e.quests})
    return jsonify([quest.to_dict() for quest in quests]), 200


@quests_bp.route('/active', methods=['GET'])
def get_active_quests():
    user_id = request.args.get('userId')
    if not user_id:
        return validation_error("userId query parameter is required.")
    try:
        service = _service()
        service.lifecycle.sweep_expired(user_id)
        quests = prioritize_quests(service.store.list_open(user_id))
        return jsonify([quest.to_dict() for quest in quests]), 200
    except Exception as e:
        return handle_exception(e, "get_active_quests endpoint")


def _apply_action(quest_id, req_data):
    try:
        quest = _service().lifecycle.apply_quest_action(quest_id, req_data.action, req_data.objectiveIndex)
    except QuestActionError as e:
        return quest_error_response(e)
    except Exception as e:
        return handle_exception(e, "quest action endpoint")
    return jsonify(quest.to_dict()), 200


@quests_bp.route('/<quest_id>/action', methods=['POST'])
def quest_action(quest_id):
    req_data = QuestActionRequest.model_validate(request.get_json(silent=True) or {})
    return _apply_action(quest_id, req_data)


@quests_bp.route('', methods=['PUT'])
def quest_action_by_body():
    """Legacy form of the action endpoint: questId travels in the body."""
    req_data = QuestActionRequest.model_validate(request.get_json(silent=True) or {})
    if not req_data.questId:
        logging.warning("Quest action received without questId.")
    return _apply_action(req_data.questId, req_data)
