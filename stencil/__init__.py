"""stencil: 디렉터리를 템플릿으로 캡처하고 새 위치에 복제."""

__version__ = "0.1.0"
