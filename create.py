# create.py - bootstrap an admin account and print its API token
from eventcare import create_app
from eventcare.extensions import db
from eventcare.models.user import User


def main():
    app = create_app()
    with app.app_context():
        db.create_all()
        email = input("Admin email: ").strip().lower()
        name = input("Full name: ").strip()

        # Check existing
        if db.session.query(User).filter_by(email=email).first():
            print("User with that email already exists.")
            return

        user = User(name=name or email, email=email, role="admin")
        db.session.add(user)
        db.session.commit()
        print(f"Admin user {email} created successfully.")
        print(f"API token: {user.api_token}")

if __name__ == "__main__":
    main()
