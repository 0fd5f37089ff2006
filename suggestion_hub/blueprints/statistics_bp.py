"""
Statistics Blueprint.

Routes:
  GET /statistics/overview   – counts by status / type / team, average score
"""

from flask import Blueprint, current_app, jsonify, request

from suggestion_hub.auth import current_principal
from suggestion_hub.blueprints import register_error_handlers
from suggestion_hub.services.capabilities import SHIFT_SUPERVISOR, TEAM_MEMBER
from suggestion_hub.services.statistics_service import get_overview

statistics_bp = Blueprint("statistics_bp", __name__, url_prefix="/api/v1/statistics")
register_error_handlers(statistics_bp)


@statistics_bp.route("/overview", methods=["GET"])
def overview():
    """Department-wide figures; team-scoped roles only see their own team."""
    principal = current_principal()
    team = request.args.get("team") or None
    if principal.role in (TEAM_MEMBER, SHIFT_SUPERVISOR):
        team = principal.team
    return jsonify(get_overview(team=team, ttl=current_app.config.get("CACHE_STATS_TTL")))
