from greeting_operator.cli import app

app()
