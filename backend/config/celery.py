# config/celery.py
import os
import logging
from celery import Celery
from celery.signals import before_task_publish, task_prerun, task_postrun, task_failure
from kombu import Queue

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('dronedispatch')
app.config_from_object('django.conf:settings', namespace='CELERY')

# ------------------------------------------------------------------------------
# Queues: live pushes (notifications) must not wait behind bulk work
# ------------------------------------------------------------------------------
app.conf.task_queues = (
    Queue('default', routing_key='default'),
    Queue('high_priority', routing_key='high_priority'),
)
app.conf.task_default_queue = 'default'
app.conf.task_default_routing_key = 'default'

app.conf.task_routes = {
    'apps.notifications.tasks.push_notification': {'queue': 'high_priority'},
}

app.conf.task_acks_late = True
app.conf.task_reject_on_worker_lost = True
app.conf.worker_prefetch_multiplier = 1
app.conf.broker_connection_retry_on_startup = True

app.autodiscover_tasks()

logger = logging.getLogger('celery.dispatch')

# ------------------------------------------------------------------------------
# Request id travels from the web request to the worker
# ------------------------------------------------------------------------------
from apps.core.middleware import get_correlation_id, _correlation_id  # noqa: E402


@before_task_publish.connect
def attach_request_id(headers=None, **kwargs):
    request_id = get_correlation_id()
    if request_id and headers is not None:
        headers['X-Request-ID'] = request_id


@task_prerun.connect
def bind_request_id(task=None, **kwargs):
    if task is None:
        return
    # Eager tasks share the caller's connection and transaction
    if not task.request.is_eager:
        from django.db import close_old_connections
        close_old_connections()

    request_id = (getattr(task.request, 'headers', None) or {}).get('X-Request-ID')
    task._request_id_token = _correlation_id.set(request_id) if request_id else None


@task_postrun.connect
def unbind_request_id(task=None, **kwargs):
    token = getattr(task, '_request_id_token', None)
    if token is not None:
        _correlation_id.reset(token)
        task._request_id_token = None


@task_failure.connect
def log_task_failure(sender=None, task_id=None, exception=None, args=None, kwargs=None, **extra):
    task_name = sender.name if sender else 'unknown_task'
    logger.error(
        f"Task {task_name} ({task_id}) failed: {exception}",
        extra={'metadata': {'task_name': task_name, 'task_id': task_id, 'args': args, 'kwargs': kwargs}},
    )
