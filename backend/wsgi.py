from meato import create_app

app = create_app()
