# server.py - Local dev node: trust ledger, input gateway and re-encryption service over HTTP

import os
from functools import wraps
from flask import Blueprint, Flask, current_app, jsonify, request

from deployment import deploy_local, make_backend
from fhe_executor import handle_to_hex, hex_to_handle
from trust_errors import CapabilityDenied, TrustLedgerError
from wallet import (
    address_from_public_key, base64_to_bytes, canonical_json, verify_signature,
)

NODE_HOST = os.environ.get("TRUST_NODE_HOST", "127.0.0.1")
NODE_PORT = int(os.environ.get("TRUST_NODE_PORT", "5000"))
NODE_BACKEND = os.environ.get("TRUST_NODE_BACKEND", "bfv")

bp = Blueprint("trust", __name__)


def _deployment():
    return current_app.config["DEPLOYMENT"]


def json_route(fn):
    """Translate ledger failures into JSON error bodies"""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except TrustLedgerError as e:
            print(f"[NODE] ✗ {type(e).__name__}: {e.message}")
            return jsonify(e.to_payload()), e.http_status
        except (KeyError, ValueError, TypeError) as e:
            print(f"[NODE] ✗ Bad request: {e!r}")
            return jsonify({"error": "BadRequest", "message": repr(e)}), 400
        except Exception as e:
            print(f"❌ ERROR: {e}")
            return jsonify({"error": "InternalError", "message": str(e)}), 500
    return wrapper


def _authenticated_sender(data, method):
    """
    Address of the signer of a mutating call. The signature covers the whole
    body except the signature fields, including the method name.
    """
    public_key = base64_to_bytes(data["sender_public_key"])
    signature = base64_to_bytes(data["signature"])
    payload = {k: v for k, v in data.items() if k not in ("sender_public_key", "signature")}
    if payload.get("method") != method:
        raise CapabilityDenied("Transaction signed for another method")
    if not verify_signature(public_key, signature, canonical_json(payload)):
        raise CapabilityDenied("Invalid transaction signature")
    return address_from_public_key(public_key)


def _statistics_json(stats):
    return {
        "event_count": stats.event_count,
        "last_activity": stats.last_activity,
        "has_data": stats.has_data,
    }


@bp.route('/status', methods=['GET'])
@json_route
def status():
    """Node status and statistics"""
    d = _deployment()
    return jsonify({
        "status": "running",
        "chain_id": d.chain.chain_id,
        "contract_address": d.ledger.address,
        "backend": d.backend.scheme,
        "users": len(d.ledger.users()),
        "ciphertexts": len(d.executor),
        "notifications": len(d.chain.logs),
    }), 200


@bp.route('/public_context', methods=['GET'])
@json_route
def public_context():
    """Everything a client needs to build encrypted inputs"""
    d = _deployment()
    return jsonify({
        "chain_id": d.chain.chain_id,
        "contract_address": d.ledger.address,
        "encryption": d.backend.public_descriptor(),
    }), 200


@bp.route('/inputs', methods=['POST'])
@json_route
def submit_inputs():
    """Upload ciphertexts and receive handles plus an input proof"""
    data = request.json
    ciphertexts = [base64_to_bytes(c) for c in data['ciphertexts']]
    handles, proof = _deployment().gateway.submit_inputs(
        ciphertexts, data['contract_address'], data['user_address']
    )
    return jsonify({
        "handles": [handle_to_hex(h) for h in handles],
        "input_proof": "0x" + proof.hex(),
    }), 200


@bp.route('/record', methods=['POST'])
@json_route
def record_event():
    """Append an encrypted trust score for the signing sender"""
    data = request.json
    sender = _authenticated_sender(data, "record")
    proof = bytes.fromhex(data['input_proof'].removeprefix("0x"))
    ledger = _deployment().ledger
    index = ledger.record_event(sender, hex_to_handle(data['handle']), proof)
    return jsonify({"index": index, "event_count": ledger.get_event_count(sender)}), 200


@bp.route('/users/<user>/total', methods=['GET'])
@json_route
def get_total(user):
    return jsonify({"handle": handle_to_hex(_deployment().ledger.get_total(user))}), 200


@bp.route('/users/<user>/average', methods=['GET'])
@json_route
def get_average(user):
    return jsonify({"handle": handle_to_hex(_deployment().ledger.get_average(user))}), 200


@bp.route('/users/<user>/count', methods=['GET'])
@json_route
def get_event_count(user):
    return jsonify({"event_count": _deployment().ledger.get_event_count(user)}), 200


@bp.route('/users/<user>/history_length', methods=['GET'])
@json_route
def get_history_length(user):
    return jsonify({"history_length": _deployment().ledger.get_history_length(user)}), 200


@bp.route('/users/<user>/last_activity', methods=['GET'])
@json_route
def get_last_activity(user):
    return jsonify({"last_activity": _deployment().ledger.get_last_activity(user)}), 200


@bp.route('/users/<user>/history/<int:index>', methods=['GET'])
@json_route
def get_by_index(user, index):
    return jsonify({"handle": handle_to_hex(_deployment().ledger.get_by_index(user, index))}), 200


@bp.route('/users/<user>/history', methods=['GET'])
@json_route
def get_range(user):
    start = int(request.args['start'])
    end = int(request.args['end'])
    handles = _deployment().ledger.get_range(user, start, end)
    return jsonify({"handles": [handle_to_hex(h) for h in handles]}), 200


@bp.route('/users/<user>/statistics', methods=['POST'])
@json_route
def get_live_statistics(user):
    """Live statistics; emits StatisticsViewed and refreshes the cache"""
    return jsonify(_statistics_json(_deployment().ledger.get_live_statistics(user))), 200


@bp.route('/users/<user>/statistics/cached', methods=['GET'])
@json_route
def get_cached_statistics(user):
    ledger = _deployment().ledger
    body = _statistics_json(ledger.get_cached_statistics(user))
    body["packed"] = hex(ledger.get_packed_statistics(user))
    return jsonify(body), 200


@bp.route('/validate_batch', methods=['POST'])
@json_route
def validate_batch():
    """Homomorphic 1-10 range check for a batch of encrypted inputs"""
    data = request.json
    sender = _authenticated_sender(data, "validate_batch")
    handles = [hex_to_handle(h) for h in data['handles']]
    proofs = [bytes.fromhex(p.removeprefix("0x")) for p in data['input_proofs']]
    results = _deployment().ledger.validate_batch(sender, handles, proofs)
    return jsonify({"results": results}), 200


@bp.route('/reencrypt', methods=['POST'])
@json_route
def reencrypt():
    """Seal a handle's value to the requester's session key"""
    return jsonify(_deployment().kms.reencrypt(request.json)), 200


@bp.route('/acl/<handle>/<principal>', methods=['GET'])
@json_route
def may_decrypt(handle, principal):
    allowed = _deployment().acl.may_decrypt(hex_to_handle(handle), principal.lower())
    return jsonify({"may_decrypt": allowed}), 200


@bp.route('/events', methods=['GET'])
@json_route
def events():
    """Emitted notifications, optionally filtered by name, from index `since`"""
    since = int(request.args.get('since', 0))
    name = request.args.get('name')
    return jsonify({"events": [log.to_json() for log in _deployment().chain.events(name, since)]}), 200


def create_app(deployment=None):
    app = Flask(__name__)
    app.config["DEPLOYMENT"] = deployment or deploy_local(make_backend(NODE_BACKEND))
    app.register_blueprint(bp)
    return app


if __name__ == '__main__':
    print("\n" + "=" * 70)
    print("  🔐 ENCRYPTED TRUST SCORE TRACKER - LOCAL NODE")
    print("=" * 70)
    print("\n  Features:")
    print(f"    • Homomorphic trust ledger ({NODE_BACKEND})")
    print("    • Input gateway with attested proofs")
    print("    • ACL-gated re-encryption (ML-KEM-1024 session keys)")
    print("\n" + "=" * 70)
    print(f"\n  Node starting on http://{NODE_HOST}:{NODE_PORT}")
    print("  Press CTRL+C to stop\n")

    # Single-threaded: the node serializes every ledger call
    create_app().run(host=NODE_HOST, port=NODE_PORT, threaded=False)
