from sshkeycodec import create_app
import config

app = create_app()

if __name__ == '__main__':
    print("Starting SSH key service...")
    print(f"Server running at http://{config.HOST}:{config.PORT}")
    print("Press Ctrl+C to stop the server")

    app.run(
        host=config.HOST,
        port=config.PORT,
        debug=config.DEBUG
    )
