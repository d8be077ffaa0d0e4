from flask import render_template
from flask_mail import Mail, Message

mail = Mail()


def send_confirmation_mail(record, event_name):
    """Send the registration confirmation to the contact person."""
    message = Message(
        subject=f'Anmeldebestätigung {event_name}',
        recipients=[record.email],
        body=render_template('mail/confirmation.txt', record=record, event_name=event_name),
    )
    mail.send(message)
    return message
