"""
Scheduled background tasks for PolicyHub.

The expiry sweep moves Approved policies past their end date to Expired.
"""

import logging

DEFAULT_EXPIRY_SWEEP_MINUTES = 60


def expire_policies_job():
    """Scheduled job wrapping the expiry sweep. Runs inside an app context."""
    # Import here to avoid circular imports
    from policyhub.services.subscriptions import expire_lapsed_policies

    logger = logging.getLogger('scheduled_tasks')
    logger.info("Starting scheduled policy expiry job")

    result = expire_lapsed_policies()
    if not result.success:
        logger.error(f"Policy expiry job failed: {result.error.kind}: {result.error.message}")
        return
    for warning in result.warnings:
        logger.warning(warning)
    logger.info(f"Policy expiry job completed. Expired {result.value} policies")


def init_scheduled_tasks(app):
    """
    Initialize and start scheduled tasks.

    Args:
        app: Flask application instance
    """
    from policyhub.extensions import scheduler

    logger = logging.getLogger('scheduled_tasks')
    minutes = app.config.get('EXPIRY_SWEEP_MINUTES', DEFAULT_EXPIRY_SWEEP_MINUTES)

    # Wrapper function that runs the job with Flask app context
    def run_with_context():
        with app.app_context():
            expire_policies_job()

    if not scheduler.running:
        scheduler.add_job(
            func=run_with_context,
            trigger='interval',
            minutes=minutes,
            id='expire_policies',
            name='Expire lapsed policies',
            replace_existing=True,
            max_instances=1  # Prevent overlapping executions
        )

        scheduler.start()
        logger.info(f"Scheduled tasks initialized. Policy expiry will run every {minutes} minutes.")
    else:
        logger.info("Scheduler already running")
