"""
Custom exceptions for the points tracker.
Provides specific exception types so callers can tell validation, lookup
and storage failures apart.
"""


class PointsTrackerException(Exception):
    """Base exception for points tracker"""
    pass


class TaskNotFoundException(PointsTrackerException):
    """Raised when a task is not found"""
    def __init__(self, task_id: int):
        self.task_id = task_id
        super().__init__(f"Task with ID {task_id} not found")


class DayNotFoundException(PointsTrackerException):
    """Raised when a day is not found"""
    def __init__(self, day_id: int):
        self.day_id = day_id
        super().__init__(f"Day with ID {day_id} not found")


class DuplicateTemplateException(PointsTrackerException):
    """Raised when an active template with the same title already exists"""
    def __init__(self, title: str):
        self.title = title
        super().__init__(f"Template '{title}' already exists")


class InvalidTimeFormatException(PointsTrackerException):
    """Raised when time format is invalid"""
    def __init__(self, time_str: str):
        self.time_str = time_str
        super().__init__(f"Invalid time format: {time_str}. Expected HH:MM")


class DatabaseException(PointsTrackerException):
    """Raised when database operations fail"""
    def __init__(self, operation: str, details: str):
        self.operation = operation
        self.details = details
        super().__init__(f"Database {operation} failed: {details}")


class ValidationException(PointsTrackerException):
    """Raised when data validation fails"""
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Validation error for {field}: {message}")
