from celery import Celery


def create_celery(app=None):
    celery = Celery('clinic_giving', include=['clinic_giving.tasks.ledger_repair_task'])

    if app:
        init_celery(celery, app)

    return celery


def init_celery(celery, app):
    celery.conf.update(
        broker_url=app.config["CELERY_BROKER_URL"],
        result_backend=app.config["CELERY_RESULT_BACKEND"],
        task_track_started=True,
        task_time_limit=5 * 60,
        task_always_eager=app.config.get("TESTING", False),
        beat_schedule={
            "repair-unrecorded-contributions": {
                "task": "repair_unrecorded_contributions_task",
                "schedule": app.config.get("LEDGER_REPAIR_INTERVAL", 15 * 60),
            },
        },
    )

    class ContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return super().__call__(*args, **kwargs)

    celery.Task = ContextTask
