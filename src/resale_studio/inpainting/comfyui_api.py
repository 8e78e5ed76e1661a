"""
ComfyUI API Client

Programmatic access to a self-hosted ComfyUI server, used as an alternative
background replacement backend.
"""

import json
import uuid
import copy
import time
import urllib.error
import urllib.request
import urllib.parse
import websocket
from typing import Any, Callable, Dict, List, Optional
import logging

from ..config import ComfyUIConfig
from ..utils import RemoteCallError, elapsed_ms
from .base import ReplaceResult
from .prompts import DEFAULT_PROMPT

logger = logging.getLogger(__name__)


class ComfyUIClient:
    """
    Client for interacting with ComfyUI server.

    Supports:
    - Uploading images
    - Running workflows
    - Retrieving results
    - Progress monitoring via WebSocket
    """

    def __init__(self, config: Optional[ComfyUIConfig] = None):
        self.config = config or ComfyUIConfig()
        self.client_id = str(uuid.uuid4())

    def _request(
        self,
        endpoint: str,
        method: str = "GET",
        data: Optional[bytes] = None,
        headers: Optional[Dict] = None
    ) -> Any:
        """Make HTTP request to ComfyUI server."""
        url = f"{self.config.base_url}/{endpoint}"

        req_headers = dict(headers or {})
        if data and "Content-Type" not in req_headers:
            req_headers["Content-Type"] = "application/json"

        request = urllib.request.Request(
            url,
            data=data,
            headers=req_headers,
            method=method
        )

        try:
            with urllib.request.urlopen(request, timeout=self.config.timeout) as response:
                return json.loads(response.read())
        except urllib.error.URLError as e:
            logger.error(f"Request failed: {e}")
            raise RemoteCallError(f"Failed to connect to ComfyUI: {e}") from e

    def queue_prompt(self, workflow: Dict) -> str:
        """
        Queue a workflow for execution.

        Returns:
            Prompt ID for tracking execution
        """
        data = json.dumps({
            "prompt": workflow,
            "client_id": self.client_id
        }).encode('utf-8')

        result = self._request("prompt", method="POST", data=data)
        prompt_id = result.get("prompt_id")
        if not prompt_id:
            raise RemoteCallError(f"ComfyUI rejected workflow: {result.get('error', result)}")
        return prompt_id

    def get_history(self, prompt_id: str) -> Dict:
        """Get execution history for a prompt."""
        return self._request(f"history/{prompt_id}")

    def get_image(self, filename: str, subfolder: str = "", folder_type: str = "output") -> bytes:
        """Retrieve an encoded image from ComfyUI."""
        params = urllib.parse.urlencode({
            "filename": filename,
            "subfolder": subfolder,
            "type": folder_type
        })

        url = f"{self.config.base_url}/view?{params}"

        with urllib.request.urlopen(url, timeout=self.config.timeout) as response:
            return response.read()

    def upload_image(
        self,
        image_bytes: bytes,
        name: str = "input.png",
        overwrite: bool = True
    ) -> Dict:
        """
        Upload encoded image bytes to ComfyUI's input folder.

        Returns:
            Upload response with filename info
        """
        boundary = uuid.uuid4().hex

        body = (
            f'--{boundary}\r\n'
            f'Content-Disposition: form-data; name="image"; filename="{name}"\r\n'
            f'Content-Type: application/octet-stream\r\n\r\n'
        ).encode('utf-8')

        body += image_bytes
        body += f'\r\n--{boundary}\r\n'.encode('utf-8')
        body += f'Content-Disposition: form-data; name="overwrite"\r\n\r\n{"true" if overwrite else "false"}'.encode('utf-8')
        body += f'\r\n--{boundary}--\r\n'.encode('utf-8')

        headers = {
            'Content-Type': f'multipart/form-data; boundary={boundary}'
        }

        return self._request("upload/image", method="POST", data=body, headers=headers)

    def wait_for_completion(
        self,
        prompt_id: str,
        callback: Optional[Callable[[Dict], None]] = None,
        poll_interval: float = 0.5
    ) -> Dict:
        """
        Wait for a prompt to complete execution.

        Tries the WebSocket progress feed first and falls back to polling.
        Both paths share one deadline of config.timeout seconds.
        """
        deadline = time.time() + self.config.timeout
        try:
            return self._wait_websocket(prompt_id, callback, deadline)
        except RemoteCallError:
            raise
        except Exception as e:
            logger.warning(f"WebSocket connection failed, falling back to polling: {e}")
            return self._wait_polling(prompt_id, poll_interval, deadline)

    def _wait_websocket(
        self,
        prompt_id: str,
        callback: Optional[Callable[[Dict], None]] = None,
        deadline: Optional[float] = None
    ) -> Dict:
        """Wait for completion using WebSocket."""
        deadline = deadline or time.time() + self.config.timeout
        ws = websocket.WebSocket()
        ws.settimeout(max(deadline - time.time(), 0.001))
        ws.connect(f"{self.config.ws_url}?clientId={self.client_id}")

        try:
            while True:
                remaining = deadline - time.time()
                if remaining <= 0:
                    raise RemoteCallError(f"ComfyUI execution timed out after {self.config.timeout}s")
                ws.settimeout(remaining)
                message = ws.recv()
                if not isinstance(message, str):
                    continue

                data = json.loads(message)
                msg_type = data.get("type")

                if msg_type == "progress":
                    if callback:
                        callback(data.get("data", {}))

                elif msg_type == "executing":
                    exec_data = data.get("data", {})
                    if exec_data.get("node") is None and exec_data.get("prompt_id") == prompt_id:
                        break

                elif msg_type == "execution_error":
                    raise RemoteCallError(f"ComfyUI execution error: {data.get('data', {})}")
        finally:
            ws.close()

        return self.get_history(prompt_id)

    def _wait_polling(self, prompt_id: str, poll_interval: float = 0.5, deadline: Optional[float] = None) -> Dict:
        """Wait for completion by polling history endpoint until the deadline."""
        deadline = deadline or time.time() + self.config.timeout

        while True:
            if time.time() >= deadline:
                raise RemoteCallError(f"ComfyUI execution timed out after {self.config.timeout}s")

            history = self.get_history(prompt_id)

            if prompt_id in history and "outputs" in history[prompt_id]:
                return history

            time.sleep(poll_interval)

    def get_output_images(self, history: Dict, prompt_id: str) -> List[bytes]:
        """Extract encoded output images from execution history."""
        images = []

        if prompt_id not in history:
            return images

        outputs = history[prompt_id].get("outputs", {})

        for node_id, node_output in outputs.items():
            for img_info in node_output.get("images", []):
                images.append(self.get_image(
                    img_info["filename"],
                    img_info.get("subfolder", ""),
                    img_info.get("type", "output")
                ))

        return images


def default_inpaint_workflow(checkpoint: str = "sd_xl_base_1.0_inpainting_0.1.safetensors") -> Dict:
    """Minimal SD inpainting graph: white mask pixels are regenerated."""
    return {
        "1": {"class_type": "CheckpointLoaderSimple", "inputs": {"ckpt_name": checkpoint}},
        "2": {"class_type": "LoadImage", "inputs": {"image": "image.png"}, "_meta": {"title": "Image"}},
        "3": {"class_type": "LoadImage", "inputs": {"image": "mask.png"}, "_meta": {"title": "Mask"}},
        "4": {"class_type": "ImageToMask", "inputs": {"image": ["3", 0], "channel": "red"}},
        "5": {"class_type": "CLIPTextEncode", "inputs": {"text": "", "clip": ["1", 1]},
              "_meta": {"title": "Positive"}},
        "6": {"class_type": "CLIPTextEncode", "inputs": {"text": "", "clip": ["1", 1]},
              "_meta": {"title": "Negative"}},
        "7": {"class_type": "VAEEncodeForInpaint",
              "inputs": {"pixels": ["2", 0], "vae": ["1", 2], "mask": ["4", 0], "grow_mask_by": 0}},
        "8": {"class_type": "KSampler",
              "inputs": {"model": ["1", 0], "positive": ["5", 0], "negative": ["6", 0],
                         "latent_image": ["7", 0], "seed": 0, "steps": 30, "cfg": 7.0,
                         "sampler_name": "euler", "scheduler": "normal", "denoise": 1.0}},
        "9": {"class_type": "VAEDecode", "inputs": {"samples": ["8", 0], "vae": ["1", 2]}},
        "10": {"class_type": "SaveImage", "inputs": {"images": ["9", 0], "filename_prefix": "resale"}},
    }


class ComfyUIInpaintWorkflow:
    """Fills a workflow template with the uploaded files and prompts."""

    NEGATIVE_PROMPT = "studio backdrop, plain color background, text, watermark, distorted product"

    def __init__(self, workflow_path: Optional[str] = None):
        self.workflow_template = self._load_workflow(workflow_path)

    def _load_workflow(self, path: Optional[str]) -> Dict:
        if path:
            with open(path, 'r') as f:
                return json.load(f)
        return default_inpaint_workflow()

    def build(
        self,
        image_filename: str,
        mask_filename: str,
        prompt: str,
        negative_prompt: Optional[str] = None,
        steps: Optional[int] = None,
        seed: Optional[int] = None
    ) -> Dict:
        workflow = copy.deepcopy(self.workflow_template)
        negative_prompt = self.NEGATIVE_PROMPT if negative_prompt is None else negative_prompt

        for node in workflow.values():
            class_type = node.get("class_type")
            title = node.get("_meta", {}).get("title", "") or node.get("title", "")

            if class_type == "CLIPTextEncode":
                if "Negative" in title:
                    node["inputs"]["text"] = negative_prompt
                else:
                    node["inputs"]["text"] = prompt

            elif class_type == "LoadImage":
                if "Mask" in title:
                    node["inputs"]["image"] = mask_filename
                else:
                    node["inputs"]["image"] = image_filename

            elif class_type == "KSampler":
                if steps is not None:
                    node["inputs"]["steps"] = steps
                if seed is not None and seed >= 0:
                    node["inputs"]["seed"] = seed

        return workflow


class ComfyUIReplacer:
    """BackgroundReplacer backed by a ComfyUI inpainting workflow."""

    name = "comfyui"

    def __init__(
        self,
        client: Optional[ComfyUIClient] = None,
        workflow: Optional[ComfyUIInpaintWorkflow] = None,
        prompt: str = DEFAULT_PROMPT
    ):
        self.client = client or ComfyUIClient()
        self.workflow = workflow or ComfyUIInpaintWorkflow(self.client.config.workflow_path)
        self.prompt = prompt

    def replace(
        self,
        image_bytes: bytes,
        mask_bytes: bytes,
        context: Optional[Dict[str, Any]] = None
    ) -> ReplaceResult:
        start = time.perf_counter()
        image_id = (context or {}).get("image_id", uuid.uuid4().hex)
        tag = image_id[:8]
        logger.info(f"[{tag}] Replace (comfyui): uploading inputs to {self.client.config.base_url}")

        try:
            image_info = self.client.upload_image(image_bytes, f"{image_id}_image.png")
            mask_info = self.client.upload_image(mask_bytes, f"{image_id}_mask.png")

            workflow = self.workflow.build(
                image_filename=image_info.get("name", f"{image_id}_image.png"),
                mask_filename=mask_info.get("name", f"{image_id}_mask.png"),
                prompt=self.prompt,
            )

            prompt_id = self.client.queue_prompt(workflow)
            history = self.client.wait_for_completion(prompt_id)
            images = self.client.get_output_images(history, prompt_id)

            if not images:
                raise RemoteCallError("No output images from workflow")

            timing = elapsed_ms(start)
            logger.info(f"[{tag}] Replace (comfyui): done in {timing}ms")
            return ReplaceResult(
                success=True,
                edited_bytes=images[0],
                inpainted_bytes=images[0],
                timing_ms=timing,
                prompt_used=self.prompt,
                model="comfyui",
                metadata={"prompt_id": prompt_id},
            )

        except Exception as e:
            timing = elapsed_ms(start)
            message = str(e) or e.__class__.__name__
            logger.error(f"[{tag}] Replace (comfyui) failed after {timing}ms: {message}")
            return ReplaceResult.failure(message, timing, "comfyui")
