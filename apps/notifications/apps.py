from django.apps import AppConfig  # type: ignore


class NotificationsConfig(AppConfig):
    name = 'apps.notifications'

    def ready(self) -> None:
        from .handlers import register_handlers

        register_handlers()
