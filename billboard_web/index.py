#!/usr/bin/env python3
"""
Flask API for the Billboard auction

Serverless-friendly JSON API in front of the billboard contract:

    POST /api/bid        place a bid on behalf of an advertiser
    GET  /api/bid        slots, bidding window and stats in one snapshot
    POST /api/finalize   settle the current round (cron)
    GET  /api/finalize   which slots still need settling
    GET  /api/refund     pending refund for an address
    POST /api/refund     how to claim a refund (claims are never proxied)
    POST /api/upload     pin an ad image to IPFS
"""

import logging
from typing import Optional

from flask import Flask, current_app, jsonify, request
from werkzeug.exceptions import RequestEntityTooLarge

from billboard.authority import AuctionAuthority
from billboard.billboard_api import BillboardAPI
from billboard.config import MAX_UPLOAD_BYTES, Settings, get_settings
from billboard.errors import BillboardError, UpstreamFailure, ValidationError
from billboard.logger import setup_logging
from billboard.mock_authority import InMemoryAuthority
from billboard.pinata import PinataClient
from billboard_web.handlers import (
    execute_finalize,
    execute_place_bid,
    execute_upload,
    fetch_billboard,
    fetch_finalization_status,
    fetch_pending_refund,
    refund_instructions,
)

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, authority: Optional[AuctionAuthority] = None,
               uploader: Optional[PinataClient] = None) -> Flask:
    """
    Build the Flask app.

    The Soroban client is created lazily on first use so a missing signer or
    contract id only fails the requests that need them.
    """
    settings = settings or get_settings()
    if authority is None and settings.authority_backend == "memory":
        authority = InMemoryAuthority(settings)

    app = Flask(__name__)
    # multipart bodies above this are refused by werkzeug before parsing
    app.config["MAX_CONTENT_LENGTH"] = MAX_UPLOAD_BYTES * 2
    app.extensions["billboard"] = {
        "settings": settings,
        "authority": authority,
        "uploader": uploader or PinataClient.from_settings(settings),
    }
    _register_routes(app)
    return app


def _state():
    return current_app.extensions["billboard"]


def get_authority() -> AuctionAuthority:
    state = _state()
    if state["authority"] is None:
        state["authority"] = BillboardAPI.from_settings(state["settings"])
    return state["authority"]


def error_response(error: Exception, fallback: str):
    """Turn an exception into a JSON error; upstream detail is logged, never returned"""
    if not isinstance(error, BillboardError):
        logger.exception("%s: unexpected error", fallback)
        return jsonify({"error": fallback}), 500

    if error.status_code >= 500:
        logger.error("%s: %s", fallback, error.detail or error.public_message)
    else:
        logger.info("Rejected request: %s", error.public_message)

    if isinstance(error, UpstreamFailure):
        return jsonify({"error": fallback}), error.status_code
    return jsonify(error.to_dict()), error.status_code


def _register_routes(app: Flask) -> None:

    @app.route('/api/health', methods=['GET', 'HEAD'])
    def health():
        return jsonify({"status": "ok"})

    @app.route('/api/bid', methods=['POST'])
    def place_bid():
        """Place a bid on a billboard slot for the next round"""
        try:
            payload = request.get_json(silent=True)
            if not isinstance(payload, dict):
                return jsonify({"error": "JSON body required"}), 400
            settings = _state()["settings"]
            result = execute_place_bid(get_authority(), settings, payload)
            return jsonify(result), 200
        except Exception as e:
            return error_response(e, "Failed to place bid")

    @app.route('/api/bid', methods=['GET'])
    def billboard_info():
        """Get all slots, the bidding window and lifetime stats"""
        try:
            result = fetch_billboard(get_authority(), _state()["settings"])
            return jsonify(result), 200
        except Exception as e:
            return error_response(e, "Failed to get billboard info")

    @app.route('/api/finalize', methods=['POST'])
    def finalize():
        """Finalize the current round for one slot or all of them"""
        try:
            payload = request.get_json(silent=True)
            if not isinstance(payload, dict):
                payload = {}
            result = execute_finalize(get_authority(), _state()["settings"], payload)
            return jsonify(result), 200
        except Exception as e:
            return error_response(e, "Failed to finalize round")

    @app.route('/api/finalize', methods=['GET'])
    def finalization_status():
        """Check which slots need their round finalized"""
        try:
            result = fetch_finalization_status(get_authority(), _state()["settings"])
            return jsonify(result), 200
        except Exception as e:
            return error_response(e, "Failed to check finalization status")

    @app.route('/api/refund', methods=['GET'])
    def pending_refund():
        """Check pending refund for an address"""
        try:
            result = fetch_pending_refund(get_authority(), _state()["settings"], request.args.get("address"))
            return jsonify(result), 200
        except Exception as e:
            return error_response(e, "Failed to get refund info")

    @app.route('/api/refund', methods=['POST'])
    def claim_refund():
        """Informational only; the bidder claims on-chain"""
        return jsonify(refund_instructions(_state()["settings"])), 400

    @app.route('/api/upload', methods=['POST'])
    def upload():
        """Upload an ad image to IPFS"""
        try:
            try:
                file = request.files.get("file")
            except RequestEntityTooLarge:
                raise ValidationError(f"File too large. Max size: {MAX_UPLOAD_BYTES // (1024 * 1024)}MB")
            result = execute_upload(_state()["uploader"], file, MAX_UPLOAD_BYTES)
            return jsonify(result), 200
        except Exception as e:
            return error_response(e, "Failed to upload image")


def build_default_app() -> Flask:
    settings = get_settings()
    setup_logging(settings.log_level)
    return create_app(settings)
