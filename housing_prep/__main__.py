from housing_prep.cli import app

app(prog_name="housing_prep")
