"""
run.py

WSGI entry point of the Sales Documents service.

Development server:

    flask --app run.py --debug run

Database (Flask-Migrate):

    flask --app run.py db init        (once, creates migrations/)
    flask --app run.py db migrate -m "initial"
    flask --app run.py db upgrade

Bootstrap a login with its company and default templates:

    flask --app run.py create-user --email admin@acme.test --company "ACME"
    flask --app run.py seed-templates
"""

from salesdocs import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True)
