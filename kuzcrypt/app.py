import threading
from pathlib import Path

import customtkinter as ctk
from tkinter import filedialog, messagebox

from kuzcrypt.cli import SUFFIX, restored_path
from kuzcrypt.codec import decrypt_file, encrypt_file
from kuzcrypt.errors import PaddingError


# -------------------- UI --------------------
class FileEncryptionApp(ctk.CTk):
    def __init__(self):
        super().__init__()
        self.title("Kuznyechik-CBC File Encryption")
        self.geometry("780x500")
        ctk.set_appearance_mode("dark")
        ctk.set_default_color_theme("blue")

        self.selected_file = None
        self.output_dir = None

        self._build_ui()
        self._lock_ui(False)

    # ---------- UI layout ----------
    def _section(self, **pack):
        frame = ctk.CTkFrame(self, corner_radius=16)
        frame.pack(fill="x", padx=16, pady=pack.pop("pady", 8), **pack)
        return frame

    def _build_ui(self):
        header = self._section(pady=(16, 8))
        ctk.CTkLabel(header, text="Kuznyechik File Encryption", font=("Segoe UI", 22, "bold")).pack(
            side="left", padx=12, pady=12)
        self.mode_switch = ctk.CTkSwitch(header, text="Light Mode", command=self._toggle_mode)
        self.mode_switch.pack(side="right", padx=12)

        source = self._section()
        self.file_entry = ctk.CTkEntry(source, placeholder_text="No file selected", width=520)
        self.file_entry.pack(side="left", padx=(12, 8), pady=12)
        for text, command in (("Choose File", self._choose_file),
                              ("Output Folder (optional)", self._choose_output)):
            ctk.CTkButton(source, text=text, command=command).pack(side="left", padx=(0, 12))

        secret = self._section()
        self.pw_entry = ctk.CTkEntry(secret, placeholder_text="Enter password…", show="*", width=520)
        self.pw_entry.pack(side="left", padx=(12, 8), pady=12)
        self.show_pw = ctk.CTkCheckBox(secret, text="Show", command=self._toggle_pw)
        self.show_pw.pack(side="left", padx=(0, 12))

        actions = self._section()
        self.encrypt_btn = ctk.CTkButton(actions, text="Encrypt", command=self._start_encrypt, width=140)
        self.decrypt_btn = ctk.CTkButton(actions, text="Decrypt", command=self._start_decrypt, width=140)
        for btn in (self.encrypt_btn, self.decrypt_btn):
            btn.pack(side="left", padx=12, pady=12)

        report = self._section()
        self.progress = ctk.CTkProgressBar(report)
        self.progress.set(0)
        self.progress.pack(fill="x", padx=12, pady=(16, 8))
        self.status = ctk.CTkTextbox(report, height=160)
        self.status.pack(fill="both", expand=True, padx=12, pady=(0, 12))
        self.status.insert("end", f"Ready. Choose a file or a {SUFFIX} container, enter the password.\n")
        self.status.configure(state="disabled")

        ctk.CTkLabel(self, wraplength=740, text=(
            "No integrity tag is stored: a wrong password shows up as a padding error, "
            "and without the password files cannot be recovered.")).pack(padx=16, pady=(0, 12))

    # ---------- Helpers ----------
    def _log(self, msg: str):
        self.status.configure(state="normal")
        self.status.insert("end", msg + "\n")
        self.status.see("end")
        self.status.configure(state="disabled")

    def _toggle_mode(self):
        if self.mode_switch.get():
            ctk.set_appearance_mode("light")
            self.mode_switch.configure(text="Dark Mode")
        else:
            ctk.set_appearance_mode("dark")
            self.mode_switch.configure(text="Light Mode")

    def _toggle_pw(self):
        self.pw_entry.configure(show="" if self.show_pw.get() else "*")

    def _choose_file(self):
        path = filedialog.askopenfilename(title="Choose a file to encrypt/decrypt")
        if path:
            self.selected_file = Path(path)
            self.file_entry.delete(0, "end")
            self.file_entry.insert(0, str(self.selected_file))

    def _choose_output(self):
        path = filedialog.askdirectory(title="Choose output folder")
        if path:
            self.output_dir = Path(path)
            self._log(f"Output folder set to: {self.output_dir}")

    def _progress_cb(self, value: float):
        # must run on UI thread; use after() to marshal
        self.after(0, lambda: self.progress.set(max(0.0, min(1.0, value))))

    def _lock_ui(self, working: bool):
        state = "disabled" if working else "normal"
        self.encrypt_btn.configure(state=state)
        self.decrypt_btn.configure(state=state)
        self.file_entry.configure(state=state)
        self.pw_entry.configure(state=state)

    def _validate_inputs(self):
        if not self.selected_file:
            messagebox.showwarning("Missing file", "Please choose a file first.")
            return False
        if not self.pw_entry.get():
            messagebox.showwarning("Missing password", "Please enter a password.")
            return False
        return True

    def _run_job(self, title: str, work):
        def job():
            try:
                result = work()
                self.after(0, lambda: self._log(f"{title} complete: {result}"))
                self.after(0, lambda: messagebox.showinfo("Done", f"{title} to:\n{result}"))
            except PaddingError as e:
                msg = str(e)
                self.after(0, lambda: self._log(f"Error: {msg}"))
                self.after(0, lambda: messagebox.showerror("Wrong password?", msg))
            except Exception as e:
                msg = str(e)
                self.after(0, lambda: self._log(f"Error: {msg}"))
                self.after(0, lambda: messagebox.showerror("Error", msg))
            finally:
                self.after(0, lambda: self._lock_ui(False))

        self._lock_ui(True)
        self.progress.set(0)
        threading.Thread(target=job, daemon=True).start()

    # ---------- Encrypt/Decrypt flows ----------
    def _start_encrypt(self):
        if not self._validate_inputs():
            return
        in_path = self.selected_file
        out_path = (self.output_dir or in_path.parent) / (in_path.name + SUFFIX)
        password = self.pw_entry.get()
        self._log(f"Encrypting: {in_path} → {out_path}")
        self._run_job("Encryption", lambda: encrypt_file(in_path, out_path, password, progress_cb=self._progress_cb))

    def _start_decrypt(self):
        if not self._validate_inputs():
            return
        in_path = self.selected_file
        if in_path.suffix.lower() != SUFFIX:
            if not messagebox.askyesno("Continue?", f"Selected file does not end with {SUFFIX}. Try to decrypt anyway?"):
                return
        out_path = restored_path(self.output_dir or in_path.parent, in_path.name)
        password = self.pw_entry.get()
        self._log(f"Decrypting: {in_path} → {out_path}")
        self._run_job("Decryption", lambda: decrypt_file(in_path, out_path, password, progress_cb=self._progress_cb))


if __name__ == "__main__":
    app = FileEncryptionApp()
    app.mainloop()
