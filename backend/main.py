from pickupmarket import create_app

app = create_app()
