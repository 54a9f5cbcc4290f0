"""Ошибки сервиса напоминаний"""


class ReminderError(Exception):
    """Базовая ошибка сервиса напоминаний"""


class ReminderNotFound(ReminderError):
    """Напоминание не найдено или принадлежит другому пользователю"""

    def __init__(self, reminder_id: int):
        super().__init__(f"Reminder {reminder_id} not found")
        self.reminder_id = reminder_id


class InvalidReminder(ReminderError):
    """Некорректные данные: пустой заголовок, дата в прошлом, минуты < 0"""


class StoreUnavailable(ReminderError):
    """Хранилище временно недоступно"""


class DeliveryFailure(ReminderError):
    """Канал доставки не смог отправить уведомление"""
