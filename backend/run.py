from hodl import create_app, socketio
from hodl.services.rounds.scheduler import start_finalize_sweep

app = create_app()

if __name__ == '__main__':
    start_finalize_sweep(app)
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, debug=True)
