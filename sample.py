"""Sample file."""

import asyncio
import logging

from pyrobocam import CameraViewer, ConnectionStatus, SignalingEndpoint

# Set the signaling host, robot id and auth key for the camera.
host = "Your signaling host"
robot_id = "Your robot id"
auth_key = "Your auth key"


async def main() -> None:
    """Run main function."""
    logging.basicConfig(level=logging.DEBUG)

    # Create a viewer for the robot's camera.
    viewer = CameraViewer(SignalingEndpoint(host, robot_id, auth_key))
    frames = 0

    def on_frame(frame) -> None:
        nonlocal frames
        frames += 1

    def on_status(status: ConnectionStatus) -> None:
        print(f"Status: {status.value}")

    viewer.on_video_frame(on_frame)
    viewer.on_status_change(on_status)

    try:
        # Connect to the broker and negotiate the media session.
        await viewer.start()
        if not await viewer.wait_for_connection(timeout=30):
            print("Unable to connect to the camera")
            return

        print(f"ICE servers: {viewer.ice_server_count}")
        await asyncio.sleep(10)
        print(f"Received {frames} video frames")
    finally:
        # Tear down the session.
        await viewer.stop()


if __name__ == "__main__":
    asyncio.run(main())
