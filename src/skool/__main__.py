from skool.cli import app

app()
