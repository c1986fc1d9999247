from app.raportal import create_app

app = create_app()
