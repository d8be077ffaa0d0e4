import hmac
import logging
from functools import wraps
from smtplib import SMTPException

from flask import Flask, render_template, request, redirect, url_for, flash, jsonify, session, send_file, get_flashed_messages, current_app
from flask_wtf.csrf import CSRFProtect, CSRFError, generate_csrf

from admin_dashboard import DashboardState
from config import Config, configure_logging, ensure_required_env_vars
from data.database import Database
from flash_messages import FlashBoard, FlashMessage
from mailer import mail, send_confirmation_mail
from excel_export import export_registrations
from registration_form import (
    CONTACT_FIELDS, PERSON_FIELDS,
    RegistrationFormController, field_name,
)

logger = logging.getLogger(__name__)

csrf = CSRFProtect()


def is_ajax():
    return request.headers.get('X-Requested-With') == 'XMLHttpRequest'


def admin_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not session.get('is_admin'):
            flash('Bitte melden Sie sich zuerst an.', 'warning')
            return redirect(url_for('login'))
        return view(*args, **kwargs)
    return wrapped


def get_db():
    return current_app.extensions['registration_db']


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    configure_logging(app.config.get('LOG_LEVEL'))
    ensure_required_env_vars()

    csrf.init_app(app)
    mail.init_app(app)
    app.extensions['registration_db'] = Database(
        path=app.config.get('DATABASE_PATH'),
        connection_string=app.config.get('SQL_CONNECTION_STRING'),
    )

    @app.context_processor
    def inject_helpers():
        return {
            'field_name': field_name,
            'person_fields': PERSON_FIELDS,
            'contact_fields': CONTACT_FIELDS,
            'flash_nodes': flash_nodes,
        }

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        logger.warning("CSRF check failed: %s", e.description)
        if is_ajax() or request.is_json:
            return jsonify({'success': False, 'error': 'CSRF-Token ungültig. Bitte laden Sie die Seite neu.'}), 400
        flash('❌ Sitzung abgelaufen. Bitte versuchen Sie es erneut.', 'error')
        return redirect(request.referrer or url_for('index'))

    register_routes(app)
    return app


def flash_nodes():
    """Pass server-side flashes through a FlashBoard so they get the overlay presentation."""
    board = FlashBoard()
    for category, message in get_flashed_messages(with_categories=True):
        board.insert(FlashMessage.from_flashed(category, message))
    board.watch()
    return board.messages()


def register_routes(app):

    @app.route('/', methods=['GET', 'POST'])
    def index():
        if request.method == 'POST' and request.is_json:
            return submit_registration_json()
        if request.method == 'POST':
            return submit_registration_form()
        controller = RegistrationFormController(csrf_token=generate_csrf())
        return render_template('index.html', form=controller)

    def submit_registration_json():
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return jsonify({'success': False, 'error': 'Ungültige Anfrage'}), 400

        controller = RegistrationFormController.from_payload(payload)
        if not controller.validate():
            return jsonify({'errors': {name: [message] for name, message in controller.errors.items()}}), 400

        # CSRFProtect has checked the token before the view ran
        submission = controller.build_submission(require_csrf=False)
        if submission is None:
            return jsonify({'success': False, 'error': 'Bitte fügen Sie mindestens eine Person hinzu.'}), 400

        try:
            registration_id = get_db().insert_registration(submission)
        except Exception as e:
            logger.error("Registration error: %s", e)
            return jsonify({'success': False, 'error': 'Die Anmeldung konnte nicht gespeichert werden.'}), 500

        logger.info("Registration %s received via API", registration_id)
        return jsonify({'success': True})

    def submit_registration_form():
        controller = RegistrationFormController.from_form(request.form)

        if request.form.get('action') == 'add_person':
            controller.add_person()
            return render_template('index.html', form=controller)

        remove_index = request.form.get('remove_person', type=int)
        if remove_index is not None:
            try:
                controller.remove_person(remove_index)
            except IndexError:
                logger.warning("Ignoring removal of unknown person %s", remove_index)
            return render_template('index.html', form=controller)

        if controller.validate():
            submission = controller.build_submission(require_csrf=False)
            if submission is not None:
                try:
                    get_db().insert_registration(submission)
                except Exception as e:
                    logger.error("Registration error: %s", e)
                    flash('❌ Fehler bei der Anmeldung: Die Anmeldung konnte nicht gespeichert werden.', 'error')
                else:
                    flash('✅ Anmeldung erfolgreich!', 'success')
                    return redirect(url_for('confirmation'))

        for node in controller.flashes.messages():
            flash(node.text, node.kind)
        return render_template('index.html', form=controller), 400

    @app.route('/confirmation')
    def confirmation():
        return render_template('confirmation.html')

    @app.route('/login', methods=['GET', 'POST'])
    def login():
        if session.get('is_admin'):
            return redirect(url_for('admin'))

        if request.method == 'POST':
            password = request.form.get('password', '')
            if hmac.compare_digest(password.encode(), app.config['ADMIN_PASSWORD'].encode()):
                session.clear()
                session['is_admin'] = True
                logger.info("Admin logged in")
                return redirect(url_for('admin'))
            flash('❌ Falsches Passwort.', 'error')

        return render_template('login.html')

    @app.route('/logout')
    def logout():
        session.clear()
        flash('Sie wurden abgemeldet.', 'success')
        return redirect(url_for('login'))

    @app.route('/admin')
    @admin_required
    def admin():
        db = get_db()
        state = DashboardState.from_query(db.get_registrations(), db.get_stats(), generate_csrf(), request.args)
        return render_template('admin.html', state=state)

    @app.route('/confirm-mail/<int:registration_id>', methods=['POST'])
    @admin_required
    def confirm_mail(registration_id):
        db = get_db()
        record = db.get_registration(registration_id)
        if record is None:
            flash('❌ Anmeldung nicht gefunden.', 'error')
            return redirect(url_for('admin'))
        if record.confirmed:
            flash('Diese Anmeldung wurde bereits bestätigt.', 'warning')
            return redirect(url_for('admin'))

        try:
            send_confirmation_mail(record, app.config['EVENT_NAME'])
        except (SMTPException, OSError) as e:
            logger.error("Confirmation mail for registration %s failed: %s", registration_id, e)
            flash('❌ Bestätigungsmail konnte nicht gesendet werden.', 'error')
            return redirect(url_for('admin'))

        db.confirm_registration(registration_id)
        flash(f'✅ Bestätigung an {record.email} gesendet.', 'success')
        return redirect(url_for('admin'))

    @app.route('/delete-entry/<int:registration_id>', methods=['POST'])
    @admin_required
    def delete_entry(registration_id):
        if get_db().delete_registration(registration_id):
            flash('✅ Eintrag gelöscht.', 'success')
        else:
            flash('❌ Anmeldung nicht gefunden.', 'error')
        return redirect(url_for('admin'))

    @app.route('/delete-all-entries', methods=['POST'])
    @admin_required
    def delete_all_entries():
        count = get_db().clear_all_registrations()
        flash(f'✅ {count} Einträge gelöscht.', 'success')
        return redirect(url_for('admin'))

    @app.route('/export-excel')
    @admin_required
    def export_excel():
        buffer = export_registrations(get_db().get_registrations())
        return send_file(
            buffer,
            mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
            as_attachment=True,
            download_name='anmeldungen.xlsx',
        )


if __name__ == '__main__':
    create_app().run(debug=True)
