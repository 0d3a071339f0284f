from flask import Blueprint, jsonify
from hodl import get_chain

main = Blueprint('main', __name__)

@main.route('/')
def index():
    chain = get_chain()
    return jsonify({
        'ok': True,
        'service': 'HODL OR DIE round coordinator',
        'finalizer': chain.signer_address if chain is not None else None,
    })
