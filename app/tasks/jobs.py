from app.tasks.celery_app import celery
from app.tasks import worker_jobs

@celery.task(name="app.tasks.jobs.process_propagation_failures")
def process_propagation_failures(limit: int = 50):
    return worker_jobs.process_propagation_failures(limit=limit)

@celery.task(name="app.tasks.jobs.reconcile_reservations")
def reconcile_reservations(limit: int | None = None):
    return worker_jobs.reconcile_reservations(limit=limit)


@celery.task(name="app.tasks.jobs.reconcile_reservation")
def reconcile_reservation(reservation_id: str):
    return worker_jobs.reconcile_reservation(reservation_id)
