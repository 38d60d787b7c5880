"""Abstract base class for email notifiers"""

from abc import ABC, abstractmethod


class BaseNotifier(ABC):
    """Interface contract for transactional email providers"""

    name: str = ""

    @abstractmethod
    def send(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        """Send one email.

        Raises:
            DeliveryError: If the provider did not accept the message
        """
