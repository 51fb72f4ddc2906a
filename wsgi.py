"""
WSGI entry point for PolicyHub.

For gunicorn: wsgi:app
"""

from policyhub import create_app
from policyhub.extensions import db

# -------------------- APPLICATION FACTORY --------------------
app = create_app()


@app.shell_context_processor
def make_shell_context():
    """Expose the database and models in ``flask shell``."""
    from policyhub import models
    return {
        'db': db,
        'Customer': models.Customer,
        'Agent': models.Agent,
        'Admin': models.Admin,
        'PolicyProduct': models.PolicyProduct,
        'UserPolicy': models.UserPolicy,
        'Payment': models.Payment,
        'Claim': models.Claim,
        'AuditLog': models.AuditLog,
    }
