import uvicorn

from web_relay.vars import HOST, LOG_LEVEL, PORT


def main():
    # Date/Server are left to the relayed target so its headers reach the caller verbatim
    uvicorn.run(
        "web_relay.server:app",
        host=HOST,
        port=PORT,
        log_level=LOG_LEVEL,
        server_header=False,
        date_header=False,
    )


if __name__ == "__main__":
    main()
