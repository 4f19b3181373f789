import os
from clinic_giving import create_app, socketio
from clinic_giving.extensions import db

app = create_app(os.getenv('FLASK_ENV', 'development'))

@app.shell_context_processor
def make_shell_context():
    from clinic_giving.models import DonationTransaction, DonationSupporter, MpesaCallbackEvent, AuditLog
    return {
        'db': db,
        'DonationTransaction': DonationTransaction,
        'DonationSupporter': DonationSupporter,
        'MpesaCallbackEvent': MpesaCallbackEvent,
        'AuditLog': AuditLog
    }

if __name__ == '__main__':
    socketio.run(app, debug=True, host='0.0.0.0', port=5000)
