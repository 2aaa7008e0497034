from app.swiftship import create_app

app = create_app()
